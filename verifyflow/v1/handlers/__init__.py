"""
KYC/AML job handlers backed by simulated verification providers.
"""
