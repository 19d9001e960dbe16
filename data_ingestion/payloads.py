"""
Data Ingestion - Typed Event Payloads.

============================================================
PURPOSE
============================================================
Closed set of decoded payload variants, one per known event kind.

- Transfer / Approval (ERC-20)
- NodePurchased, UserRegistered, ReferralRegistered
- Referral rewards (single and bulk)
- Reward family (claims, hold/release, booster)
- Opaque: declared event without a dedicated variant, or whose
  ABI payload could not be decoded
- Unknown: first topic not in the signature table

============================================================
DESIGN PRINCIPLES
============================================================
- Immutable (frozen dataclasses)
- Amounts are ints in base units, never floats
- Addresses lowercase hex
- Uniform accessors (package_id, amount, referrer) for persistence

============================================================
"""

from dataclasses import dataclass, fields
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class _BasePayload:
    """Common accessors; variants override what applies to them."""

    @property
    def package_id(self) -> Optional[int]:
        return None

    @property
    def amount(self) -> Optional[int]:
        return None

    @property
    def referrer(self) -> Optional[str]:
        return None

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": type(self).__name__}
        for f in fields(self):
            value = getattr(self, f.name)
            # Large ints travel as strings so JSON consumers keep precision
            data[f.name] = str(value) if isinstance(value, int) and not isinstance(value, bool) else value
        return data


@dataclass(frozen=True)
class TransferPayload(_BasePayload):
    from_address: str
    to_address: str
    value: int

    @property
    def amount(self) -> Optional[int]:
        return self.value


@dataclass(frozen=True)
class ApprovalPayload(_BasePayload):
    owner: str
    spender: str
    value: int

    @property
    def amount(self) -> Optional[int]:
        return self.value


@dataclass(frozen=True)
class NodePurchasedPayload(_BasePayload):
    user: str
    package: int
    purchase_time: int
    expiry_time: int
    node_id: int

    @property
    def package_id(self) -> Optional[int]:
        return self.package


@dataclass(frozen=True)
class UserRegisteredPayload(_BasePayload):
    user: str
    package: int

    @property
    def package_id(self) -> Optional[int]:
        return self.package


@dataclass(frozen=True)
class ReferralRegisteredPayload(_BasePayload):
    user: str
    referrer_address: str
    package: int
    package_referral_count: int
    total_referral_count: int

    @property
    def package_id(self) -> Optional[int]:
        return self.package

    @property
    def referrer(self) -> Optional[str]:
        return self.referrer_address


@dataclass(frozen=True)
class ReferralRewardPayload(_BasePayload):
    referrer_address: str
    user: str
    package: int
    level: int
    reward_amount: int

    @property
    def package_id(self) -> Optional[int]:
        return self.package

    @property
    def amount(self) -> Optional[int]:
        return self.reward_amount

    @property
    def referrer(self) -> Optional[str]:
        return self.referrer_address


@dataclass(frozen=True)
class BulkReferralRewardPayload(_BasePayload):
    """Ascension bonus: reward for a package's referral sales milestone."""
    user: str
    package: int
    referral_count: int
    sales_total: int
    reward_amount: int

    @property
    def package_id(self) -> Optional[int]:
        return self.package

    @property
    def amount(self) -> Optional[int]:
        return self.reward_amount


@dataclass(frozen=True)
class RewardPayload(_BasePayload):
    """
    Reward family: RewardsClaimed, UserHoldReward, UserReleaseReward,
    UserHoldRewardLevel, UserReleaseRewardLevel, AddBoosterReward.

    The contract emits the package id as nodeIndex.
    """
    kind: str
    user: str
    reward: int
    node_index: Optional[int] = None
    referral: Optional[str] = None
    level: Optional[int] = None

    @property
    def package_id(self) -> Optional[int]:
        return self.node_index

    @property
    def amount(self) -> Optional[int]:
        return self.reward

    @property
    def beneficiary(self) -> str:
        """Level rewards accrue to the referral, the others to the user."""
        if self.kind in LEVEL_REWARD_EVENTS and self.referral:
            return self.referral
        return self.user

    @property
    def referrer(self) -> Optional[str]:
        return self.referral


@dataclass(frozen=True)
class OpaquePayload(_BasePayload):
    """Declared event kept as its decoded argument mapping (possibly empty)."""
    args: Tuple[Tuple[str, Any], ...] = ()

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in self.args:
            if key == name:
                return value
        return default

    @property
    def package_id(self) -> Optional[int]:
        for name in ("packageId", "id"):
            value = self.get(name)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        return None

    @property
    def amount(self) -> Optional[int]:
        for name in ("amount", "value", "feeAmount", "discountAmount", "rewardsUsed"):
            value = self.get(name)
            if isinstance(value, int):
                return value
        return None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "kind": "OpaquePayload",
            "args": {
                key: str(value) if isinstance(value, int) and not isinstance(value, bool) else value
                for key, value in self.args
            },
        }


@dataclass(frozen=True)
class UnknownPayload(_BasePayload):
    signature_hash: Optional[str] = None


EventPayload = Union[
    TransferPayload,
    ApprovalPayload,
    NodePurchasedPayload,
    UserRegisteredPayload,
    ReferralRegisteredPayload,
    ReferralRewardPayload,
    BulkReferralRewardPayload,
    RewardPayload,
    OpaquePayload,
    UnknownPayload,
]


# Event kinds whose amount accrues to total rewards
REWARD_ACCRUAL_EVENTS = frozenset({
    "UserHoldReward",
    "UserReleaseReward",
    "UserHoldRewardLevel",
    "UserReleaseRewardLevel",
    "ReferralRewardEarned",
})

LEVEL_REWARD_EVENTS = frozenset({
    "UserHoldRewardLevel",
    "UserReleaseRewardLevel",
})

REWARD_EVENTS = frozenset({
    "RewardsClaimed",
    "UserHoldReward",
    "UserReleaseReward",
    "AddBoosterReward",
}) | LEVEL_REWARD_EVENTS

REFERRAL_REWARD_EVENTS = frozenset({
    "ReferralRewardEarned",
    "ReferralRegisteredAndRewardDistributed",
})


def build_payload(event_name: str, args: Dict[str, Any]) -> EventPayload:
    """
    Map decoded ABI arguments onto the typed variant for event_name.

    Raises KeyError when an expected argument is missing; callers
    fall back to OpaquePayload.
    """
    if event_name == "Transfer":
        return TransferPayload(args["from"], args["to"], args["value"])
    if event_name == "Approval":
        return ApprovalPayload(args["owner"], args["spender"], args["value"])
    if event_name == "NodePurchased":
        return NodePurchasedPayload(
            user=args["user"],
            package=args["packageId"],
            purchase_time=args["purchaseTime"],
            expiry_time=args["expiryTime"],
            node_id=args["currentNodeId"],
        )
    if event_name == "UserRegistered":
        return UserRegisteredPayload(user=args["user"], package=args["packageId"])
    if event_name == "ReferralRegistered":
        return ReferralRegisteredPayload(
            user=args["user"],
            referrer_address=args["referrer"],
            package=args["packageId"],
            package_referral_count=args["packageReferralCount"],
            total_referral_count=args["totalReferralCount"],
        )
    if event_name in REFERRAL_REWARD_EVENTS:
        return ReferralRewardPayload(
            referrer_address=args["referrer"],
            user=args["user"],
            package=args["packageId"],
            level=args["level"],
            reward_amount=args["rewardAmount"],
        )
    if event_name == "BulkReferralRewardEarned":
        return BulkReferralRewardPayload(
            user=args["user"],
            package=args["_packageId"],
            referral_count=args["referralCount"],
            sales_total=args["salesTotal"],
            reward_amount=args["rewardAmount"],
        )
    if event_name in REWARD_EVENTS:
        return RewardPayload(
            kind=event_name,
            user=args["user"],
            reward=args["boosterReward"] if event_name == "AddBoosterReward" else args["amount"],
            node_index=args.get("nodeIndex"),
            referral=args.get("referral"),
            level=args.get("level"),
        )
    return OpaquePayload(tuple(args.items()))
