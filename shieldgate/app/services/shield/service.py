"""Admission decision gate combining detection and suspicion scoring."""

from typing import Any, Mapping, Optional

from shieldgate.app.core.logging import get_log_context, get_logger
from shieldgate.app.exceptions import AccessDeniedError
from shieldgate.app.services.shield.detector import AttackDetector
from shieldgate.app.services.shield.models import AdmissionDecision, ShieldOptions
from shieldgate.app.services.shield.stores import InMemorySuspicionStore, SuspicionStore

logger = get_logger(__name__)


class Shield:
    """Per-request admission gate.

    Decision order for one request:

    1. no client key: deny;
    2. client currently blocked: deny, without scoring the request;
    3. no attack signature matched: allow;
    4. otherwise score the client once (however many categories matched)
       and deny with the matched categories when the score reached the
       threshold.

    Store failures propagate; the caller chooses fail-open or fail-closed.
    The rate limiter is a separate layer and is never consulted here.
    """

    def __init__(
        self,
        options: Optional[ShieldOptions] = None,
        store: Optional[SuspicionStore] = None,
        detector: Optional[AttackDetector] = None,
    ):
        self.options = options or ShieldOptions()
        if store is None:
            store = InMemorySuspicionStore(threshold=self.options.suspicion_threshold)
        self.store = store
        self.detector = detector if detector is not None else AttackDetector.from_options(self.options)

    @property
    def suspicion_threshold(self) -> int:
        return self.store.threshold

    async def evaluate(
        self,
        client_key: Optional[str],
        fields: Mapping[str, Any],
    ) -> AdmissionDecision:
        """Decide whether the request described by ``fields`` may proceed.

        Args:
            client_key: Resolved client identity, or None if unresolvable.
            fields: Merged query, body and path parameters.
        """
        if not client_key:
            return AdmissionDecision.deny(self.options.message)

        if await self.store.is_blocked(client_key):
            return AdmissionDecision.deny(self.options.message)

        detection = self.detector.classify(fields)
        if not detection.is_suspicious:
            return AdmissionDecision.allow()

        score = await self.store.increment(client_key, self.options.block_duration_ms)
        logger.warning(
            f"Suspicious activity detected: {', '.join(detection.attack_types)}",
            extra=get_log_context(
                client_key=client_key,
                score=score,
                attack_types=detection.attack_types,
            ),
        )

        if score >= self.suspicion_threshold:
            return AdmissionDecision.deny(
                self.options.message,
                detected_attacks=detection.attack_types,
                score=score,
            )
        return AdmissionDecision.allow(score=score)

    async def enforce(self, client_key: Optional[str], fields: Mapping[str, Any]) -> AdmissionDecision:
        """Like ``evaluate`` but raises ``AccessDeniedError`` on denial."""
        decision = await self.evaluate(client_key, fields)
        if not decision.allowed:
            raise AccessDeniedError(decision.message or self.options.message, decision.detected_attacks)
        return decision

    async def flush_expired_scores(self) -> int:
        return await self.store.flush_expired()
