import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from kubernetes_asyncio.client import ApiClient
from kubernetes_asyncio.leaderelection import electionconfig, leaderelection
from kubernetes_asyncio.leaderelection.resourcelock.leaselock import LeaseLock

from ..exceptions import ResizerLeadershipLostError
from ..settings import LeaderElectionConfig

logger = logging.getLogger(__name__)


async def run_as_leader(
    api_client: ApiClient,
    config: LeaderElectionConfig,
    start: Callable[[], Awaitable[None]],
    stop_event: asyncio.Event,
) -> None:
    """Run `start()` once this instance holds the lease.

    Returns when it completes, or when `stop_event` is set before the lease
    was acquired. An exception raised by `start()` is re-raised here. Losing
    the lease raises `ResizerLeadershipLostError`; there is no graceful
    demotion, the process is expected to exit.
    """
    leading = asyncio.Event()
    finished = asyncio.Event()
    failure: list[BaseException] = []

    async def _on_started_leading() -> None:
        logger.info("Became leader, starting")
        leading.set()
        try:
            await start()
        except Exception as exc:
            failure.append(exc)
        # Not reached when the election cancels this task after losing the lease.
        finished.set()

    async def _on_stopped_leading() -> None:
        logger.critical("Stopped leading")

    election = leaderelection.LeaderElection(
        electionconfig.Config(
            LeaseLock(config.lock_name, config.namespace, config.identity, api_client),
            lease_duration=config.lease_duration,
            renew_deadline=config.renew_deadline,
            retry_period=config.retry_period,
            onstarted_leading=_on_started_leading,
            onstopped_leading=_on_stopped_leading,
        )
    )
    logger.info("Waiting to acquire lease %s/%s as %s", config.namespace, config.lock_name, config.identity)

    election_task = asyncio.create_task(election.run(), name="leader election")
    finished_task = asyncio.create_task(finished.wait())
    stop_task = asyncio.create_task(stop_event.wait())
    pending: set[asyncio.Task[Any]] = {election_task, finished_task, stop_task}
    try:
        while True:
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            if finished_task in done:
                if failure:
                    raise failure[0]
                return
            if election_task in done:
                raise ResizerLeadershipLostError(
                    f"{config.identity} lost lease {config.namespace}/{config.lock_name}"
                ) from election_task.exception()
            if stop_task in done and not leading.is_set():
                logger.info("Shutdown requested before acquiring the lease")
                return
    finally:
        for task in (election_task, finished_task, stop_task):
            task.cancel()
