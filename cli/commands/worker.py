"""Worker Command - run the queue workers in this process"""

import asyncio

import typer

from verifyflow.config.logging import setup_logging
from verifyflow.config.settings import Settings, get_settings
from verifyflow.v1.handlers.registry_init import register_domain_handlers
from verifyflow.v1.infra.queues.orchestrator import Orchestrator

from ..utils.formatting import print_info, print_success


def run(
    drain: bool = typer.Option(
        False, "--drain", help="Process eligible jobs until every queue is empty, then exit"
    ),
    latency_scale: float | None = typer.Option(
        None, "--latency-scale", min=0, help="Override the simulated provider latency scale"
    ),
):
    """⚙️ Run the job workers until SIGINT/SIGTERM"""
    settings = get_settings()
    if latency_scale is not None:
        settings = settings.model_copy(update={"provider_latency_scale": latency_scale})

    setup_logging(settings)
    if drain:
        processed = asyncio.run(_drain(settings))
        print_success(f"Processed {processed} jobs")
    else:
        print_info("Starting workers, press Ctrl+C to stop")
        asyncio.run(_serve(settings))
        print_success("Workers stopped")


async def _setup(settings: Settings) -> Orchestrator:
    orchestrator = Orchestrator(settings)
    await orchestrator.start()
    register_domain_handlers(orchestrator.engine, settings)
    return orchestrator


async def _serve(settings: Settings) -> None:
    orchestrator = await _setup(settings)
    orchestrator.install_signal_handlers()
    await orchestrator.engine.start()
    await orchestrator.wait_closed()


async def _drain(settings: Settings) -> int:
    orchestrator = await _setup(settings)
    processed = 0
    try:
        # Follow-ups can land on queues drained earlier; repeat until a full pass is idle
        while True:
            batch = 0
            for name in orchestrator.registry.names():
                batch += len(await orchestrator.engine.drain(name))
            if batch == 0:
                break
            processed += batch
    finally:
        await orchestrator.close_all()
    return processed
