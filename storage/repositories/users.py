"""
Storage - User Repository.

============================================================
RESPONSIBILITY
============================================================
Creates, reads and updates per-address user rows.

- upsert_user: first-writer-wins creation
- update_user: exactly the supplied fields plus updated_at
- increment_user: row-locked read-modify-write for counters
- Paginated listing and monthly signup analytics

============================================================
DESIGN PRINCIPLES
============================================================
- Updatable columns are an explicit enum, never free-form names
- Sessions are injected; callers own the transaction
- All DB errors wrapped in PersistenceError subclasses

============================================================
"""

from decimal import Decimal, localcontext
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.activity import UserRecord
from storage.models.base import AMOUNT_PRECISION
from storage.repositories.base import BaseRepository, Page
from storage.repositories.exceptions import RecordNotFoundError


class UserField(str, Enum):
    """Updatable user fields, by their external (API) name."""
    TOTAL_REFERRALS = "totalReferrals"
    TOTAL_REWARDS = "totalRewards"
    IS_REGISTERED = "isRegistered"
    ASCENSION_BONUS_REFERRALS = "ascensionBonusReferrals"
    ASCENSION_BONUS_SALES_TOTAL = "ascensionBonusSalesTotal"
    ASCENSION_BONUS_REWARDS_CLAIMED = "ascensionBonusRewardsClaimed"


USER_FIELD_COLUMNS: Dict[UserField, str] = {
    UserField.TOTAL_REFERRALS: "total_referrals",
    UserField.TOTAL_REWARDS: "total_rewards",
    UserField.IS_REGISTERED: "is_registered",
    UserField.ASCENSION_BONUS_REFERRALS: "ascension_bonus_referrals",
    UserField.ASCENSION_BONUS_SALES_TOTAL: "ascension_bonus_sales_total",
    UserField.ASCENSION_BONUS_REWARDS_CLAIMED: "ascension_bonus_rewards_claimed",
}

ADDITIVE_FIELDS = frozenset({
    UserField.TOTAL_REFERRALS,
    UserField.TOTAL_REWARDS,
    UserField.ASCENSION_BONUS_REFERRALS,
    UserField.ASCENSION_BONUS_SALES_TOTAL,
    UserField.ASCENSION_BONUS_REWARDS_CLAIMED,
})

DECIMAL_FIELDS = frozenset({
    UserField.TOTAL_REWARDS,
    UserField.ASCENSION_BONUS_SALES_TOTAL,
    UserField.ASCENSION_BONUS_REWARDS_CLAIMED,
})


def _coerce_field(field: Union[UserField, str]) -> UserField:
    if isinstance(field, UserField):
        return field
    try:
        return UserField(field)
    except ValueError:
        raise ValueError(f"Unknown user field: {field!r}") from None


class UserRepository(BaseRepository[UserRecord]):
    """Data access for the users table."""

    def __init__(self, session: Session) -> None:
        super().__init__(session, UserRecord, "UserRepository")

    def get_user(self, address: str) -> Optional[UserRecord]:
        stmt = (
            select(UserRecord)
            .where(UserRecord.address == address.lower())
            .execution_options(populate_existing=True)
        )
        return self._execute_scalar(stmt)

    def get_user_or_raise(self, address: str) -> UserRecord:
        user = self.get_user(address)
        if user is None:
            raise RecordNotFoundError(self._repository_name, address, "address")
        return user

    def upsert_user(self, address: str) -> UserRecord:
        """
        Create the user if absent, otherwise return the existing row.

        Must be the first write of its transaction: a lost creation
        race rolls the transaction back and re-reads the winner.
        """
        address = address.lower()
        existing = self.get_user(address)
        if existing is not None:
            return existing

        try:
            user = UserRecord(address=address)
            self._session.add(user)
            self._session.flush()
            self._logger.info(f"Created user {address}")
            return user
        except SQLAlchemyIntegrityError:
            self._session.rollback()
            self._logger.debug(f"Concurrent creation of {address}, re-reading")
            return self.get_user_or_raise(address)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "upsert_user", {"address": address})
            raise

    def update_user(
        self,
        address: str,
        fields: Mapping[Union[UserField, str], Any],
    ) -> UserRecord:
        """
        Set exactly the supplied fields plus updated_at = now().

        Raises:
            ValueError: an unknown field name
            RecordNotFoundError: no such user
        """
        values: Dict[str, Any] = {}
        for key, value in fields.items():
            field = _coerce_field(key)
            if field in DECIMAL_FIELDS and value is not None:
                value = Decimal(value)
            values[USER_FIELD_COLUMNS[field]] = value
        values["updated_at"] = func.now()

        address = address.lower()
        stmt = (
            update(UserRecord)
            .where(UserRecord.address == address)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._session.execute(stmt)
        except SQLAlchemyError as e:
            self._handle_db_error(e, "update_user", {"address": address})
            raise

        if result.rowcount == 0:
            raise RecordNotFoundError(self._repository_name, address, "address")
        return self.get_user_or_raise(address)

    def increment_user(
        self,
        address: str,
        field: Union[UserField, str],
        delta: Union[int, Decimal],
    ) -> UserRecord:
        """
        Add delta to an additive counter.

        The row is locked (SELECT ... FOR UPDATE where supported) for
        the read-modify-write, so concurrent increments serialize.
        """
        field = _coerce_field(field)
        if field not in ADDITIVE_FIELDS:
            raise ValueError(f"{field.value} is not an additive field")

        address = address.lower()
        stmt = (
            select(UserRecord)
            .where(UserRecord.address == address)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        user = self._execute_scalar(stmt)
        if user is None:
            raise RecordNotFoundError(self._repository_name, address, "address")

        column = USER_FIELD_COLUMNS[field]
        current = getattr(user, column) or 0
        if field in DECIMAL_FIELDS:
            with localcontext() as ctx:
                ctx.prec = AMOUNT_PRECISION
                new_value: Any = Decimal(current) + Decimal(delta)
        else:
            new_value = int(current) + int(delta)
        return self.update_user(address, {field: new_value})

    def list_users(self, page: Page) -> List[UserRecord]:
        """Users, newest first."""
        stmt = (
            select(UserRecord)
            .order_by(UserRecord.created_at.desc(), UserRecord.id.desc())
            .limit(page.limit)
            .offset(page.offset)
        )
        return self._execute_query(stmt)

    def count_users(self) -> int:
        return self._count()

    def monthly_user_counts(self) -> List[Dict[str, Any]]:
        """New users per calendar month, oldest first."""
        dialect = self._session.get_bind().dialect.name
        if dialect == "sqlite":
            month = func.strftime("%Y-%m", UserRecord.created_at)
        else:
            month = func.to_char(func.date_trunc("month", UserRecord.created_at), "YYYY-MM")
        stmt = (
            select(month.label("month"), func.count().label("count"))
            .group_by(month)
            .order_by(month)
        )
        rows = self._execute_rows(stmt, "monthly_user_counts")
        return [{"month": row.month, "count": int(row.count)} for row in rows]
