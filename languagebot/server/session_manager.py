"""Holds the process's single practice session and its score report."""

import logging

from languagebot.agent.provider import DialogueAgentPort
from languagebot.events.event_bus import EventBus
from languagebot.scoring.engine import ScoringEngine
from languagebot.scoring.types import ScoreReport
from languagebot.session.turn_controller import SessionStateError, TurnController
from languagebot.session.types import SessionConfig, StatusEvent
from languagebot.stt.provider import SpeechCapturePort
from languagebot.tts.provider import SpeechOutputPort

logger = logging.getLogger(__name__)


class SessionManager:
    """Creates a TurnController per session and scores it when it ends.

    Only one session exists at a time; starting a new one ends the
    previous one first.
    """

    def __init__(
        self,
        *,
        agent: DialogueAgentPort,
        capture: SpeechCapturePort,
        output: SpeechOutputPort,
        status_bus: EventBus[StatusEvent],
        scoring: ScoringEngine | None = None,
    ) -> None:
        self._agent = agent
        self._capture = capture
        self._output = output
        self._status_bus = status_bus
        self._scoring = scoring or ScoringEngine(agent)
        self._controller: TurnController | None = None
        self._last_report: ScoreReport | None = None

    @property
    def controller(self) -> TurnController | None:
        return self._controller

    @property
    def last_report(self) -> ScoreReport | None:
        return self._last_report

    async def start_session(self, config: SessionConfig) -> TurnController:
        if self._controller is not None and self._controller.is_active:
            logger.info("Ending the previous session before starting a new one")
            await self._controller.end_session()

        self._last_report = None
        self._controller = TurnController(
            config,
            agent=self._agent,
            capture=self._capture,
            output=self._output,
            status_bus=self._status_bus,
        )
        await self._controller.start()
        return self._controller

    async def end_turn(self) -> TurnController:
        controller = self._require_active()
        await controller.end_turn()
        return controller

    async def retry_turn(self) -> bool:
        return await self._require_active().retry_turn()

    async def end_session(self) -> ScoreReport:
        """End the active session and return its full score report."""
        controller = self._require_active()
        transcript = await controller.end_session()
        self._last_report = await self._scoring.score(transcript, controller.session.config)
        return self._last_report

    async def shutdown(self) -> None:
        """End any active session without scoring it."""
        if self._controller is not None and self._controller.is_active:
            await self._controller.end_session()

    def _require_active(self) -> TurnController:
        if self._controller is None or not self._controller.is_active:
            raise SessionStateError("no active session")
        return self._controller
