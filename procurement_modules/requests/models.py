"""
Request Domain Models.

The nouns of the approval chain: material and product requests, their line
items, and the approval/rejection stamps recorded on each transition.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from procurement_kernel.domain.identity import Actor
from procurement_kernel.domain.values import (
    ZERO,
    decimal_str,
    optional_decimal,
    require_positive,
    require_text,
    to_decimal,
)
from procurement_kernel.exceptions import ValidationError
from procurement_kernel.logging_config import get_logger
from procurement_modules import collections
from procurement_modules.stock.models import MaterialCategory

logger = get_logger("modules.requests.models")


class RequestKind(Enum):
    MATERIAL = "material"
    PRODUCT = "product"

    @property
    def collection(self) -> str:
        if self is RequestKind.MATERIAL:
            return collections.MATERIAL_REQUESTS
        return collections.PRODUCT_REQUESTS


class RequestStatus(Enum):
    """Canonical request lifecycle states."""
    PENDING_HO = "pending_ho"
    FORWARDED_TO_MD = "forwarded_to_md"
    MD_APPROVED = "md_approved"
    REJECTED = "rejected"


class RejectionStage(Enum):
    OPERATIONS_HEAD = "operations_head"
    DIRECTOR = "director"


class Urgency(Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


@dataclass(frozen=True)
class RequestLine:
    """One requested material or product."""
    material_id: str
    material_name: str
    quantity: Decimal
    unit: str = ""
    urgency: Urgency = Urgency.NORMAL
    reason: str = ""
    category: MaterialCategory = MaterialCategory.RAW
    estimated_unit_price: Decimal | None = None

    @property
    def estimated_value(self) -> Decimal | None:
        if self.estimated_unit_price is None:
            return None
        return self.quantity * self.estimated_unit_price

    def to_document(self) -> dict[str, Any]:
        return {
            "materialId": self.material_id,
            "materialName": self.material_name,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "urgency": self.urgency.value,
            "reason": self.reason,
            "category": self.category.value,
            "estimatedUnitPrice": decimal_str(self.estimated_unit_price),
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> RequestLine:
        return cls(
            material_id=doc["materialId"],
            material_name=doc.get("materialName", ""),
            quantity=to_decimal(doc["quantity"], "quantity"),
            unit=doc.get("unit", ""),
            urgency=Urgency(doc.get("urgency") or "normal"),
            reason=doc.get("reason", ""),
            category=MaterialCategory(doc.get("category") or "raw"),
            estimated_unit_price=optional_decimal(
                doc.get("estimatedUnitPrice"), "estimatedUnitPrice",
            ),
        )

    @classmethod
    def parse(cls, item: RequestLine | Mapping[str, Any], index: int) -> RequestLine:
        """Validate caller input (a RequestLine or a camelCase/snake_case dict)."""
        if isinstance(item, RequestLine):
            data: Mapping[str, Any] = {
                "materialId": item.material_id,
                "materialName": item.material_name,
                "quantity": item.quantity,
                "unit": item.unit,
                "urgency": item.urgency.value,
                "reason": item.reason,
                "category": item.category.value,
                "estimatedUnitPrice": item.estimated_unit_price,
            }
        else:
            data = item

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if data.get(key) not in (None, ""):
                    return data[key]
            return default

        prefix = f"items[{index}]"
        material_id = pick("materialId", "material_id")
        if material_id is None:
            raise ValidationError(f"{prefix}.materialId", "material reference is required")
        quantity = pick("quantity")
        if quantity is None:
            raise ValidationError(f"{prefix}.quantity", "quantity is required")
        try:
            urgency = Urgency(str(pick("urgency", default="normal")).lower())
        except ValueError:
            raise ValidationError(f"{prefix}.urgency", "unknown urgency") from None
        try:
            category = MaterialCategory(str(pick("category", default="raw")).lower())
        except ValueError:
            raise ValidationError(f"{prefix}.category", "must be raw or packing") from None
        return cls(
            material_id=require_text(material_id, f"{prefix}.materialId"),
            material_name=str(pick("materialName", "material_name", default="")).strip(),
            quantity=require_positive(quantity, f"{prefix}.quantity"),
            unit=str(pick("unit", default="")).strip(),
            urgency=urgency,
            reason=str(pick("reason", default="")).strip(),
            category=category,
            estimated_unit_price=optional_decimal(
                pick("estimatedUnitPrice", "estimated_unit_price"),
                f"{prefix}.estimatedUnitPrice",
            ),
        )


@dataclass(frozen=True)
class ApprovalStamp:
    """Who moved the request, when, and with what remark."""
    actor: Actor
    at: int
    comments: str = ""

    def to_document(self) -> dict[str, Any]:
        return {
            "by": self.actor.id,
            "name": self.actor.display_name,
            "role": self.actor.role.value,
            "at": self.at,
            "comments": self.comments,
        }

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> ApprovalStamp:
        return cls(
            actor=Actor.from_document(
                {"id": doc["by"], "name": doc.get("name", ""), "role": doc["role"]}
            ),
            at=doc.get("at", 0),
            comments=doc.get("comments") or doc.get("reason") or "",
        )


# Keys of the workflow history map
SUBMITTED = "submitted"
HO_APPROVED = "hoApproved"
FORWARDED_TO_MD = "forwardedToMD"
MD_APPROVED = "mdApproved"
HO_REJECTED = "hoRejected"
MD_REJECTED = "mdRejected"


@dataclass(frozen=True)
class MaterialRequest:
    """A material or product request moving through two-tier approval."""
    id: str
    kind: RequestKind
    items: tuple[RequestLine, ...]
    requester: Actor
    status: RequestStatus
    workflow: Mapping[str, ApprovalStamp] = field(default_factory=dict)
    rejection_stage: RejectionStage | None = None
    rejection_reason: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_final(self) -> bool:
        return self.status in (RequestStatus.MD_APPROVED, RequestStatus.REJECTED)

    @property
    def estimated_value(self) -> Decimal | None:
        """Sum of line estimates; None if any line has no estimate."""
        total = ZERO
        for line in self.items:
            value = line.estimated_value
            if value is None:
                return None
            total += value
        return total

    @property
    def operations_head_approval(self) -> ApprovalStamp | None:
        return self.workflow.get(HO_APPROVED)

    @property
    def director_approval(self) -> ApprovalStamp | None:
        return self.workflow.get(MD_APPROVED)

    def to_document(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "items": [line.to_document() for line in self.items],
            "requestedBy": self.requester.to_document(),
            "status": self.status.value,
            "workflow": {key: stamp.to_document() for key, stamp in self.workflow.items()},
            "rejectionStage": self.rejection_stage.value if self.rejection_stage else None,
            "rejectionReason": self.rejection_reason,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_document(cls, request_id: str, doc: Mapping[str, Any]) -> MaterialRequest:
        from procurement_modules.requests.workflows import normalize_status

        status, legacy_stage = normalize_status(doc["status"])
        stage = doc.get("rejectionStage")
        return cls(
            id=request_id,
            kind=RequestKind(doc.get("kind", "material")),
            items=tuple(RequestLine.from_document(i) for i in doc.get("items", ())),
            requester=Actor.from_document(doc["requestedBy"]),
            status=status,
            workflow={
                key: ApprovalStamp.from_document(stamp)
                for key, stamp in (doc.get("workflow") or {}).items()
            },
            rejection_stage=RejectionStage(stage) if stage else legacy_stage,
            rejection_reason=doc.get("rejectionReason"),
            created_at=doc.get("createdAt", 0),
            updated_at=doc.get("updatedAt", 0),
        )
