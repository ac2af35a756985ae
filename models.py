from datetime import datetime, timezone
from typing import Callable, Optional, Union

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import Session, declarative_base
from sqlalchemy.sql import func

from billing.records import SubscriptionRecord, SubscriptionStatus


class TimestampMixin:
	"""Reusable timestamp columns for created/updated tracking."""

	created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
	updated_at = Column(
		DateTime(timezone=True),
		nullable=False,
		server_default=func.now(),
		onupdate=func.now(),
	)

Base = declarative_base()


class SubscriptionRow(TimestampMixin, Base):
	"""Local mirror of a user's Stripe subscription."""

	__tablename__ = "billing_subscriptions"

	id = Column(Integer, primary_key=True, index=True)
	user_id = Column(String(64), nullable=False, unique=True, index=True)
	name = Column(String(100), nullable=False)
	plan_id = Column(String(128), nullable=False)
	payment_session_id = Column(String(255), nullable=True, index=True)
	provider_subscription_id = Column(String(255), nullable=True, unique=True)
	status = Column(String(50), nullable=False, default=SubscriptionStatus.INCOMPLETE.value)
	start_date = Column(DateTime(timezone=True), nullable=True)
	end_date = Column(DateTime(timezone=True), nullable=True)
	trial_ends_at = Column(DateTime(timezone=True), nullable=True)

	def __repr__(self) -> str:  # pragma: no cover - debug helper
		return (
			f"<SubscriptionRow user_id={self.user_id!r} plan={self.plan_id!r} "
			f"status={self.status!r} subscription={self.provider_subscription_id!r}>"
		)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
	# SQLite drops tzinfo on the way back out.
	if value is not None and value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value


def _to_record(row: SubscriptionRow) -> SubscriptionRecord:
	return SubscriptionRecord(
		id=row.id,
		user_id=row.user_id,
		name=row.name,
		plan_id=row.plan_id,
		payment_session_id=row.payment_session_id,
		provider_subscription_id=row.provider_subscription_id,
		status=SubscriptionStatus(row.status),
		start_date=_aware(row.start_date),
		end_date=_aware(row.end_date),
		trial_ends_at=_aware(row.trial_ends_at),
	)


def _apply(row: SubscriptionRow, record: SubscriptionRecord) -> None:
	row.user_id = str(record.user_id)
	row.name = record.name
	row.plan_id = record.plan_id
	row.payment_session_id = record.payment_session_id
	row.provider_subscription_id = record.provider_subscription_id
	row.status = SubscriptionStatus(record.status).value
	row.start_date = record.start_date
	row.end_date = record.end_date
	row.trial_ends_at = record.trial_ends_at


class SqlAlchemySubscriptionStore:
	"""SubscriptionStore backed by the ``billing_subscriptions`` table."""

	def __init__(self, session_factory: Callable[[], Session]):
		self.session_factory = session_factory

	def _get_one(self, *criteria) -> Optional[SubscriptionRecord]:
		with self.session_factory() as session:
			row = session.query(SubscriptionRow).filter(*criteria).one_or_none()
			return _to_record(row) if row is not None else None

	def get_by_user(self, user_id: Union[int, str]) -> Optional[SubscriptionRecord]:
		return self._get_one(SubscriptionRow.user_id == str(user_id))

	def get_by_session(self, payment_session_id: str) -> Optional[SubscriptionRecord]:
		return self._get_one(SubscriptionRow.payment_session_id == payment_session_id)

	def get_by_provider_subscription(self, provider_subscription_id: str) -> Optional[SubscriptionRecord]:
		return self._get_one(SubscriptionRow.provider_subscription_id == provider_subscription_id)

	def create(self, record: SubscriptionRecord) -> SubscriptionRecord:
		with self.session_factory() as session:
			row = SubscriptionRow()
			_apply(row, record)
			session.add(row)
			session.commit()
			session.refresh(row)
			return _to_record(row)

	def update(self, record: SubscriptionRecord) -> SubscriptionRecord:
		with self.session_factory() as session:
			row = None
			if record.id is not None:
				row = session.get(SubscriptionRow, record.id)
			if row is None:
				row = (
					session.query(SubscriptionRow)
					.filter(SubscriptionRow.user_id == str(record.user_id))
					.one_or_none()
				)
			if row is None:
				raise LookupError(f"No subscription row for user {record.user_id}")

			_apply(row, record)
			session.commit()
			session.refresh(row)
			return _to_record(row)
