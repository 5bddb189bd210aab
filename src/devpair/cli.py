"""CLI entry point for devpair."""

import asyncio
import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import click

from devpair import __version__
from devpair.config import Config, load_config
from devpair.logging import setup_logging
from devpair.pairing import (
    AcceptRequest,
    ConfirmPin,
    DialogKind,
    HttpCommandGateway,
    PairingCoordinator,
    PairingEventStream,
    PairingOutcome,
    RejectRequest,
    SelectPeer,
    ViewModel,
)
from devpair.pairing.types import UserAction

logger = logging.getLogger(__name__)


class PromptingPresenter:
    """Terminal presentation layer for a PairingCoordinator.

    Turns view model snapshots into prompts and echoes outcomes. Prompts block
    on stdin in a daemon thread so the event loop keeps processing events and
    an unanswered prompt never holds up interpreter exit.

    An answer is only applied to the session and phase it was asked for. If
    the session ended or moved on while the user was typing, the answer is
    dropped.
    """

    def __init__(
        self,
        coordinator: PairingCoordinator,
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        """Initialize presenter.

        Args:
            coordinator: Coordinator to render and dispatch to.
            confirm: Blocking yes/no prompt (defaults to ``click.confirm``).
        """
        self._coordinator = coordinator
        self._confirm = confirm or click.confirm
        self._prompted: Optional[tuple] = None
        self._tasks: set[asyncio.Task] = set()

    def on_view_model(self, view_model: ViewModel) -> None:
        if view_model.busy:
            return

        if view_model.dialog_kind is DialogKind.REQUEST:
            key = ("request", view_model.peer_name)
            if key != self._prompted:
                self._prompted = key
                self._spawn(self._prompt_request(view_model))
        elif view_model.dialog_kind is DialogKind.PIN:
            key = ("pin", view_model.pin_code)
            if key != self._prompted:
                self._prompted = key
                self._spawn(self._prompt_pin(view_model))
        elif view_model.dialog_kind is DialogKind.CONNECTING:
            click.echo("Waiting for the other device...")

    def on_outcome(self, outcome: PairingOutcome) -> None:
        self._prompted = None
        self.cancel_prompts()
        if outcome.succeeded:
            click.echo("Pairing complete.")
        elif outcome.error_code is not None:
            message = outcome.error or outcome.error_code.value
            click.echo(f"Pairing failed: {message}", err=True)
        else:
            click.echo("Pairing cancelled.")

    def cancel_prompts(self) -> None:
        """Abandon outstanding prompts; their answers are discarded."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    async def _prompt_request(self, view_model: ViewModel) -> None:
        session, phase = self._coordinator.session, self._coordinator.phase
        name = view_model.peer_name or "Unknown device"
        accepted = await self._ask(f"{name} wants to pair with this device. Accept?")
        self._answer(session, phase, AcceptRequest() if accepted else RejectRequest())

    async def _prompt_pin(self, view_model: ViewModel) -> None:
        session, phase = self._coordinator.session, self._coordinator.phase
        click.echo(f"\n  PIN: {view_model.pin_code}\n")
        if view_model.peer_fingerprint:
            click.echo(f"Peer fingerprint: {view_model.peer_fingerprint}")
        matches = await self._ask("Does this PIN match the one on the other device?")
        self._answer(session, phase, ConfirmPin(matches))

    def _answer(self, session, phase, action: UserAction) -> None:
        coordinator = self._coordinator
        if coordinator.session is not session or coordinator.phase is not phase:
            logger.debug(f"Dropping stale answer {action!r}")
            return
        coordinator.dispatch(action)

    async def _ask(self, text: str) -> bool:
        """Run the blocking prompt in a daemon thread and await its answer."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def deliver(answer: bool) -> None:
            if not future.done():
                future.set_result(answer)

        def ask() -> None:
            try:
                answer = bool(self._confirm(text))
            except (click.Abort, EOFError):
                # Ctrl+D at the prompt counts as "no"
                answer = False
            try:
                loop.call_soon_threadsafe(deliver, answer)
            except RuntimeError:
                # Loop already closed; nobody is waiting for the answer
                pass

        threading.Thread(target=ask, name="devpair-prompt", daemon=True).start()
        return await future

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


async def _run_pairing(config: Config, peer_id: Optional[str]) -> Optional[PairingOutcome]:
    """Run one coordinator against the configured service.

    Args:
        config: Loaded configuration.
        peer_id: Peer to pair with, or None to wait for inbound requests
            until interrupted.

    Returns:
        Outcome of the session started for ``peer_id``; None when listening.
    """
    logger.info(f"Using pairing service at {config.service.base_url}")
    async with HttpCommandGateway(
        config.service.base_url,
        request_timeout=config.service.request_timeout,
    ) as gateway:
        coordinator = PairingCoordinator(
            gateway, return_delay=config.pairing.return_delay
        )
        presenter = PromptingPresenter(coordinator)
        coordinator.subscribe(presenter.on_view_model)
        coordinator.subscribe_outcomes(presenter.on_outcome)

        finished: asyncio.Future = asyncio.get_running_loop().create_future()

        def on_outcome(outcome: PairingOutcome) -> None:
            if peer_id is not None and not finished.done():
                finished.set_result(outcome)

        coordinator.subscribe_outcomes(on_outcome)

        stream = PairingEventStream(
            coordinator.handle_event,
            base_url=config.service.base_url,
            reconnect_delay=config.service.reconnect_delay,
        )
        await stream.start()
        try:
            if peer_id is not None:
                coordinator.dispatch(SelectPeer(peer_id))
            return await finished
        finally:
            presenter.cancel_prompts()
            await stream.close()
            await coordinator.close()


@click.group()
@click.version_option(__version__, prog_name="devpair")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """devpair - Pair this device with a peer."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(config)
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.argument("peer_id")
@click.pass_context
def pair(ctx: click.Context, peer_id: str) -> None:
    """Pair with PEER_ID and confirm the PIN."""
    config = ctx.obj["config"]

    try:
        outcome = asyncio.run(_run_pairing(config, peer_id))
    except KeyboardInterrupt:
        click.echo("\nCancelled.")
        raise SystemExit(1)

    if outcome is None or not outcome.succeeded:
        raise SystemExit(1)


@main.command()
@click.pass_context
def listen(ctx: click.Context) -> None:
    """Wait for pairing requests from other devices."""
    config = ctx.obj["config"]
    click.echo("Waiting for pairing requests. Press Ctrl+C to stop")

    try:
        asyncio.run(_run_pairing(config, None))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


if __name__ == "__main__":
    main()
