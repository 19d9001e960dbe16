"""
Data Ingestion - Event Signature Table.

Maps a log's first topic (keccak-256 of the canonical event signature)
to the event declaration it belongs to. A miss is not an error: the
normalizer names such events "Unknown".
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from eth_utils import keccak


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventParam:
    name: str
    abi_type: str
    indexed: bool = False


@dataclass(frozen=True)
class EventSignature:
    """A Solidity event declaration."""
    name: str
    params: Tuple[EventParam, ...]

    @property
    def canonical(self) -> str:
        """e.g. Transfer(address,address,uint256)"""
        return f"{self.name}({','.join(p.abi_type for p in self.params)})"

    @property
    def topic(self) -> str:
        return "0x" + keccak(text=self.canonical).hex()

    @property
    def indexed_params(self) -> List[EventParam]:
        return [p for p in self.params if p.indexed]

    @property
    def data_params(self) -> List[EventParam]:
        return [p for p in self.params if not p.indexed]

    @classmethod
    def parse(cls, declaration: str) -> "EventSignature":
        """
        Parse a human-readable declaration.

        "Transfer(address indexed from, address indexed to, uint256 value)"
        """
        declaration = declaration.strip()
        if declaration.startswith("event "):
            declaration = declaration[len("event "):]
        name, _, rest = declaration.partition("(")
        if not name or not rest.endswith(")"):
            raise ValueError(f"Malformed event declaration: {declaration!r}")

        params = []
        body = rest[:-1].strip()
        for position, part in enumerate(body.split(",") if body else []):
            tokens = part.split()
            if not tokens:
                raise ValueError(f"Empty parameter in {declaration!r}")
            indexed = "indexed" in tokens[1:]
            names = [t for t in tokens[1:] if t != "indexed"]
            params.append(EventParam(
                name=names[0] if names else f"arg{position}",
                abi_type=tokens[0],
                indexed=indexed,
            ))
        return cls(name=name.strip(), params=tuple(params))


# Events the indexed contracts emit
DEFAULT_EVENT_DECLARATIONS = (
    "NodePurchased(address indexed user, uint256 indexed packageId, uint256 purchaseTime, uint256 expiryTime, uint256 currentNodeId)",
    "ReferralRewardEarned(address indexed referrer, address indexed user, uint256 indexed packageId, uint256 level, uint256 rewardAmount)",
    "ReferralRegistered(address indexed user, address indexed referrer, uint256 indexed packageId, uint256 packageReferralCount, uint256 totalReferralCount)",
    "RewardsClaimed(address indexed user, uint256 amount, uint256 nodeIndex)",
    "ProsperityFundContribution(uint256 amount, uint256 newBalance)",
    "PackageProsperityFundContribution(uint256 indexed packageId, uint256 indexed cycle, uint256 amount, uint256 newBalance)",
    "AddBoosterReward(address indexed user, uint256 boosterReward)",
    "AdminMarketingBonusCollected(address indexed admin, uint256 amount)",
    "LiquidityWithdrawn(address indexed admin, uint256 amount, uint256 percentage)",
    "FirstTimeUserFeeCollected(address indexed user, uint256 packageId, uint256 feeAmount)",
    "RewardsDiscountUsed(address indexed user, uint256 packageId, uint256 discountAmount, uint256 finalPrice)",
    "UserHoldReward(address indexed user, uint256 amount, uint256 nodeIndex)",
    "UserReleaseReward(address indexed user, uint256 amount, uint256 nodeIndex)",
    "UserHoldRewardLevel(address indexed user, uint256 amount, uint256 nodeIndex, address referral, uint256 level)",
    "UserReleaseRewardLevel(address indexed user, uint256 amount, uint256 nodeIndex, address referral, uint256 level)",
    "UserRegistered(address indexed user, uint256 indexed packageId)",
    "ReferralRegisteredAndRewardDistributed(address indexed user, address indexed referrer, uint256 indexed packageId, uint256 level, uint256 rewardAmount)",
    "BulkReferralRewardEarned(address indexed user, uint256 indexed _packageId, uint256 referralCount, uint256 salesTotal, uint256 rewardAmount)",
    "DiscountedNodePurchased(address indexed user, uint256 indexed packageId, uint256 originalPrice, uint256 discountedPrice, uint256 rewardsUsed)",
    "RewardsWithdrawn(address indexed user, uint256 amount)",
    "RewardWithdrawalRequest(address indexed user, uint256 amount, uint256 timestamp)",
    "ProsperityFundDistributed(address indexed recipient, uint256 amount)",
    "PackageProsperityFundDistributed(address indexed recipient, uint256 indexed packageId, uint256 indexed cycle, uint256 amount)",
    # Package catalogue and settings
    "NodePackageAdded(uint256 indexed id, string name, uint256 price, uint256 duration, uint256 roiPercentage)",
    "NodePackageUpdated(uint256 indexed id, string name, uint256 price, uint256 duration, uint256 roiPercentage, bool isActive)",
    "ProsperityFundSettingsUpdated(bool enabled, uint256 percentage, uint256 distributionDays)",
    "AdminMarketingBonusSettingsUpdated(address indexed adminWallet, bool enabled, uint256 percentage)",
    "LiquidityWithdrawalSettingsUpdated(bool enabled, uint256 percentage, address liquidityAddress)",
    "FirstTimeUserFeeSettingsUpdated(uint256 percentage, address feeAddress)",
    "RewardsDiscountSettingsUpdated(bool enabled, uint256 percentage)",
    "SevenLevelReferralPercentageUpdated(uint256 index, uint256 percentage)",
    "MinReferralsUpdated(uint256 oldValue, uint256 newValue)",
    "UpdateBoosterPercentage(uint256 boosterPercentage)",
    # ERC-20
    "Transfer(address indexed from, address indexed to, uint256 value)",
    "Approval(address indexed owner, address indexed spender, uint256 value)",
)


class EventSignatureTable:
    """
    Static topic0 -> EventSignature lookup.

    Built once; extra declarations may be supplied at construction.
    """

    def __init__(self, declarations: Iterable[str] = DEFAULT_EVENT_DECLARATIONS) -> None:
        self._by_topic: Dict[str, EventSignature] = {}
        for declaration in declarations:
            signature = EventSignature.parse(declaration)
            topic = signature.topic
            if topic in self._by_topic:
                logger.warning(f"[signatures] Duplicate declaration for {signature.canonical}")
            self._by_topic[topic] = signature

    @classmethod
    def with_extra(cls, extra: Iterable[str]) -> "EventSignatureTable":
        return cls(tuple(DEFAULT_EVENT_DECLARATIONS) + tuple(extra))

    def lookup(self, topic0: Optional[str]) -> Optional[EventSignature]:
        if not topic0:
            return None
        return self._by_topic.get(topic0.lower())

    def name_for(self, topic0: Optional[str]) -> Optional[str]:
        signature = self.lookup(topic0)
        return signature.name if signature else None

    def topics(self) -> Dict[str, str]:
        """topic0 -> event name, for diagnostics."""
        return {topic: sig.name for topic, sig in self._by_topic.items()}

    def __contains__(self, topic0: object) -> bool:
        return isinstance(topic0, str) and topic0.lower() in self._by_topic

    def __len__(self) -> int:
        return len(self._by_topic)
