"""
Request Service (``procurement_modules.requests.service``).

Responsibility
--------------
Owns the request lifecycle for material and product requests: creation,
operations-head approval or rejection, director approval or rejection, and
the read-only queues each approver works from.  Final approval creates the
purchase preparations in the same unit of work.

Architecture position
---------------------
**Modules layer.**  Entry point of the procurement flow.  Delegates
preparation creation to ``PreparationService``; notifies through the
kernel fan-out.

Invariants enforced
-------------------
* Status moves only along ``REQUEST_WORKFLOW`` edges; ``md_approved`` and
  ``rejected`` are terminal.  Repeating an approval fails.
* The precondition is re-checked inside the same unit that writes, so a
  stale caller cannot overwrite a newer decision.
* Preparations exist only for finally approved requests (they are created
  in the approving unit, which rolls back as a whole on failure).
* Every transition records the acting identity and time.

Failure modes
-------------
* ``ValidationError`` -- empty items, missing material/quantity, empty
  rejection reason.
* ``InvalidTransitionError`` -- request not in the precondition state.
* ``NotFoundError`` -- unknown request id.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import replace
from typing import Any

from procurement_kernel.domain.clock import Clock
from procurement_kernel.domain.identity import Actor, Role
from procurement_kernel.domain.values import require_text
from procurement_kernel.domain.workflow import Transition
from procurement_kernel.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from procurement_kernel.logging_config import LogContext, get_logger
from procurement_kernel.notifications import NotificationFanout, NotificationKind
from procurement_kernel.services.base import BaseService
from procurement_kernel.store.base import Document, EntityStore
from procurement_modules.preparation.service import PreparationService
from procurement_modules.requests.config import RequestConfig
from procurement_modules.requests.models import (
    FORWARDED_TO_MD,
    HO_APPROVED,
    HO_REJECTED,
    MD_APPROVED,
    MD_REJECTED,
    SUBMITTED,
    ApprovalStamp,
    MaterialRequest,
    RejectionStage,
    RequestKind,
    RequestLine,
    RequestStatus,
)
from procurement_modules.requests.workflows import REQUEST_WORKFLOW, normalize_status

logger = get_logger("modules.requests.service")

_KIND_FOR_STATE = {
    "forwarded_to_md": NotificationKind.REQUEST_FORWARDED,
    "md_approved": NotificationKind.REQUEST_APPROVED,
    "rejected": NotificationKind.REQUEST_REJECTED,
}


class RequestService(BaseService):
    """
    Two-tier approval of material and product requests.

    Contract:
        The acting identity is an explicit argument of every operation.
    Guarantees:
        - Approval at the director creates exactly one preparation per line.
        - Notifications go out only after the transition commits and never
          fail the transition.
    Non-goals:
        - Authorization.  The caller's route layer decides who may act.
    """

    def __init__(
        self,
        store: EntityStore,
        preparations: PreparationService,
        clock: Clock | None = None,
        notifications: NotificationFanout | None = None,
        config: RequestConfig | None = None,
    ):
        super().__init__(store, clock, notifications)
        self._preparations = preparations
        self._config = config or RequestConfig()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_request(
        self,
        items: Sequence[RequestLine | Mapping[str, Any]],
        requester: Actor,
        kind: RequestKind = RequestKind.MATERIAL,
    ) -> MaterialRequest:
        """Submit a new request; it waits for the operations head."""
        if not items:
            raise ValidationError("items", "at least one item is required")
        lines = tuple(RequestLine.parse(item, index) for index, item in enumerate(items))

        now = self._now()
        request = MaterialRequest(
            id="",
            kind=kind,
            items=lines,
            requester=requester,
            status=RequestStatus(REQUEST_WORKFLOW.initial_state),
            workflow={SUBMITTED: ApprovalStamp(requester, now)},
            created_at=now,
            updated_at=now,
        )
        document = request.to_document()
        document["updatedBy"] = requester.to_document()

        with LogContext.bind(actor_id=requester.id, actor_role=requester.role.value):
            request_id = self._store.append(kind.collection, document)
            logger.info("request_created", extra={
                "request_id": request_id,
                "kind": kind.value,
                "line_count": len(lines),
            })

        self._notifications.send(
            [Role.HEAD_OF_OPERATIONS], NotificationKind.REQUEST_SUBMITTED, request_id,
        )
        return replace(request, id=request_id)

    def approve_at_operations_head(
        self,
        request_id: str,
        approver: Actor,
        comments: str = "",
    ) -> MaterialRequest:
        """Forward to the director (or finalize a low-value product request)."""

        def choose(request: MaterialRequest) -> str:
            if self._finalizes_at_operations_head(request):
                return "approve_low_value"
            return "approve_at_operations_head"

        def apply(request: MaterialRequest, transition: Transition) -> MaterialRequest:
            now = self._now()
            workflow = dict(request.workflow)
            workflow[HO_APPROVED] = ApprovalStamp(approver, now, comments)
            if transition.to_state == "forwarded_to_md":
                workflow[FORWARDED_TO_MD] = ApprovalStamp(approver, now, comments)
            return replace(request, workflow=workflow)

        return self._transition(request_id, approver, choose, apply)

    def reject_at_operations_head(
        self,
        request_id: str,
        rejector: Actor,
        reason: str,
    ) -> MaterialRequest:
        reason = require_text(reason, "reason")
        return self._transition(
            request_id, rejector, "reject_at_operations_head",
            self._rejection(rejector, reason, HO_REJECTED, RejectionStage.OPERATIONS_HEAD),
        )

    def approve_at_director(
        self,
        request_id: str,
        approver: Actor,
        comments: str = "",
    ) -> MaterialRequest:
        """Final approval; creates one purchase preparation per line."""

        def apply(request: MaterialRequest, transition: Transition) -> MaterialRequest:
            workflow = dict(request.workflow)
            workflow[MD_APPROVED] = ApprovalStamp(approver, self._now(), comments)
            return replace(request, workflow=workflow)

        return self._transition(request_id, approver, "approve_at_director", apply)

    def reject_at_director(
        self,
        request_id: str,
        rejector: Actor,
        reason: str,
    ) -> MaterialRequest:
        reason = require_text(reason, "reason")
        return self._transition(
            request_id, rejector, "reject_at_director",
            self._rejection(rejector, reason, MD_REJECTED, RejectionStage.DIRECTOR),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: str) -> MaterialRequest:
        for kind in RequestKind:
            doc = self._store.read(f"{kind.collection}/{request_id}")
            if doc is not None:
                return MaterialRequest.from_document(request_id, doc)
        raise NotFoundError("material_request", request_id)

    def list_requests(self, kind: RequestKind | None = None) -> list[MaterialRequest]:
        """All requests, newest first."""
        kinds = [kind] if kind is not None else list(RequestKind)
        found: list[MaterialRequest] = []
        for k in kinds:
            found.extend(
                MaterialRequest.from_document(rid, doc)
                for rid, doc in self._store.list(k.collection).items()
            )
        found.reverse()
        return sorted(found, key=lambda r: r.created_at, reverse=True)

    def list_by_status(
        self,
        status: RequestStatus | str,
        kind: RequestKind | None = None,
    ) -> list[MaterialRequest]:
        if not isinstance(status, RequestStatus):
            status, _ = normalize_status(status)
        return [r for r in self.list_requests(kind) if r.status is status]

    def list_by_requester(
        self,
        requester_id: str,
        kind: RequestKind | None = None,
    ) -> list[MaterialRequest]:
        return [r for r in self.list_requests(kind) if r.requester.id == requester_id]

    def pending_for_operations_head(self, kind: RequestKind | None = None) -> list[MaterialRequest]:
        return self.list_by_status(RequestStatus.PENDING_HO, kind)

    def pending_for_director(self, kind: RequestKind | None = None) -> list[MaterialRequest]:
        return self.list_by_status(RequestStatus.FORWARDED_TO_MD, kind)

    def watch_requests(
        self,
        on_change: Callable[[MaterialRequest], None],
        kind: RequestKind = RequestKind.MATERIAL,
    ) -> Callable[[], None]:
        """Push each committed change of a request to ``on_change``."""

        def forward(path: str, document: Document | None) -> None:
            if document is None:
                return
            on_change(MaterialRequest.from_document(path.rsplit("/", 1)[-1], document))

        return self._store.subscribe(kind.collection, forward)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finalizes_at_operations_head(self, request: MaterialRequest) -> bool:
        threshold = self._config.director_signoff_threshold
        if threshold is None or request.kind is not RequestKind.PRODUCT:
            return False
        value = request.estimated_value
        return value is not None and value < threshold

    def _rejection(
        self,
        rejector: Actor,
        reason: str,
        history_key: str,
        stage: RejectionStage,
    ) -> Callable[[MaterialRequest, Transition], MaterialRequest]:
        def apply(request: MaterialRequest, transition: Transition) -> MaterialRequest:
            workflow = dict(request.workflow)
            workflow[history_key] = ApprovalStamp(rejector, self._now(), reason)
            return replace(
                request,
                workflow=workflow,
                rejection_stage=stage,
                rejection_reason=reason,
            )

        return apply

    def _transition(
        self,
        request_id: str,
        actor: Actor,
        action: str | Callable[[MaterialRequest], str],
        apply: Callable[[MaterialRequest, Transition], MaterialRequest],
    ) -> MaterialRequest:
        with LogContext.bind(
            actor_id=actor.id, actor_role=actor.role.value, entity_id=request_id,
        ):
            with self._store.atomic():
                request = self.get_request(request_id)
                chosen = action(request) if callable(action) else action
                try:
                    transition = REQUEST_WORKFLOW.resolve(
                        request.status.value, chosen, request_id,
                    )
                except InvalidTransitionError:
                    logger.warning("request_transition_rejected", extra={
                        "request_id": request_id,
                        "status": request.status.value,
                        "action": chosen,
                    })
                    raise

                updated = replace(
                    apply(request, transition),
                    status=RequestStatus(transition.to_state),
                    updated_at=self._now(),
                )
                document = updated.to_document()
                document["updatedBy"] = actor.to_document()
                self._store.write(f"{request.kind.collection}/{request_id}", document)

                preparations = []
                if updated.status is RequestStatus.MD_APPROVED:
                    preparations = self._preparations.create_from_approved_request(
                        updated, actor,
                    )

            logger.info("request_transition_committed", extra={
                "request_id": request_id,
                "action": chosen,
                "from_state": transition.from_state,
                "to_state": transition.to_state,
                "preparations_created": len(preparations),
            })

        self._notify(updated, transition)
        return updated

    def _notify(self, request: MaterialRequest, transition: Transition) -> None:
        kind = _KIND_FOR_STATE.get(transition.to_state)
        if kind is None:
            return
        recipients: list[Role | str | None] = []
        for token in transition.notifies:
            if token == "requester":
                recipients.append(request.requester.id)
            elif token == "operations_head":
                stamp = request.operations_head_approval
                recipients.append(stamp.actor.id if stamp else None)
            else:
                recipients.append(Role(token))
        self._notifications.send(recipients, kind, request.id)
