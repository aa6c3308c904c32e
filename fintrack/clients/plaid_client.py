"""Plaid implementation of the aggregator client used by the sync worker."""
import json
import logging
import uuid
from datetime import date, timedelta
from decimal import Decimal

from cryptography.fernet import InvalidToken
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from fintrack.core.config import settings
from fintrack.core.database import SessionLocal
from fintrack.core.exceptions import AggregatorError
from fintrack.core.security import decrypt_value
from fintrack.models.account import Account, PlaidItem
from fintrack.schemas.sync import AggregatorSyncResult, RawTransaction

logger = logging.getLogger(__name__)

PAGE_SIZE = 500

# Plaid error_code → message wording the retry classifier understands
_ERROR_MESSAGES: dict[str, str] = {
    "INVALID_ACCESS_TOKEN":       "Invalid access token",
    "ITEM_LOGIN_REQUIRED":        "Invalid access token: item login required",
    "INVALID_PUBLIC_TOKEN":       "Invalid public token",
    "ITEM_NOT_FOUND":             "Account not found: Plaid item no longer exists",
    "RATE_LIMIT_EXCEEDED":        "Plaid rate limit exceeded",
    "PRODUCT_NOT_READY":          "Plaid transactions temporary unavailable (product not ready)",
    "INTERNAL_SERVER_ERROR":      "Plaid temporary internal error",
    "PLANNED_MAINTENANCE":        "Plaid temporary planned maintenance",
    "INSTITUTION_DOWN":           "Institution temporary outage",
    "INSTITUTION_NOT_RESPONDING": "Institution timeout",
}


def _build_plaid_client():
    if not settings.plaid_client_id or not settings.plaid_secret:
        raise AggregatorError("Plaid not configured")

    import plaid
    from plaid.api import plaid_api

    configuration = plaid.Configuration(
        host=getattr(plaid.Environment, settings.plaid_env.capitalize()),
        api_key={
            "clientId": settings.plaid_client_id,
            "secret": settings.plaid_secret,
        },
    )
    return plaid_api.PlaidApi(plaid.ApiClient(configuration))


def translate_plaid_error(exc: Exception) -> AggregatorError:
    """Turn a plaid ApiException into an AggregatorError with classifier-friendly wording."""
    code = None
    detail = str(exc)
    body = getattr(exc, "body", None)
    if body:
        try:
            payload = json.loads(body)
        except (TypeError, ValueError):
            payload = None
        if isinstance(payload, dict):
            code = payload.get("error_code")
            detail = payload.get("error_message") or detail

    message = _ERROR_MESSAGES.get(code or "")
    if message is None:
        status = getattr(exc, "status", None) or 0
        if status >= 500:
            message = f"Plaid temporary error ({status}): {detail}"
        else:
            message = f"Plaid error {code or status}: {detail}"
    return AggregatorError(message, error_code=code)


def _to_raw(pt) -> RawTransaction:
    # Plaid reports outflows as positive amounts; ours are credit-positive
    return RawTransaction(
        transaction_id=pt.transaction_id,
        date=pt.date,
        amount=-Decimal(str(pt.amount)),
        name=pt.name,
        merchant_name=getattr(pt, "merchant_name", None),
        category=getattr(pt, "category", None),
    )


class PlaidAggregatorClient:
    """Pulls the trailing window of transactions for one linked account."""

    def __init__(
        self,
        session_factory: sessionmaker[Session] = SessionLocal,
        api=None,
        lookback_days: int = settings.sync_lookback_days,
    ):
        self._session_factory = session_factory
        self._api = api
        self.lookback_days = lookback_days

    @property
    def api(self):
        if self._api is None:
            self._api = _build_plaid_client()
        return self._api

    def _load_link(self, account_id: str) -> tuple[str, str]:
        """Return (access_token, plaid_account_id) for one of our accounts."""
        try:
            acct_uuid = uuid.UUID(str(account_id))
        except ValueError:
            raise AggregatorError(f"Account not found: {account_id}")

        with self._session_factory() as db:
            row = db.execute(
                select(Account.plaid_account_id, PlaidItem.encrypted_access_token)
                .join(PlaidItem, Account.plaid_item_id == PlaidItem.id)
                .where(Account.id == acct_uuid)
            ).one_or_none()

        if row is None or not row.plaid_account_id:
            raise AggregatorError("Account not found or not linked to Plaid")

        try:
            access_token = decrypt_value(row.encrypted_access_token)
        except InvalidToken:
            raise AggregatorError("Invalid access token: stored token cannot be decrypted")
        return access_token, row.plaid_account_id

    def sync_transactions(self, account_id: str) -> AggregatorSyncResult:
        from plaid.exceptions import ApiException
        from plaid.model.transactions_get_request import TransactionsGetRequest
        from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions

        access_token, plaid_account_id = self._load_link(account_id)
        end = date.today()
        start = end - timedelta(days=self.lookback_days)

        transactions: list[RawTransaction] = []
        try:
            while True:
                resp = self.api.transactions_get(TransactionsGetRequest(
                    access_token=access_token,
                    start_date=start,
                    end_date=end,
                    options=TransactionsGetRequestOptions(
                        account_ids=[plaid_account_id],
                        count=PAGE_SIZE,
                        offset=len(transactions),
                    ),
                ))
                transactions.extend(_to_raw(pt) for pt in resp.transactions)
                if not resp.transactions or len(transactions) >= resp.total_transactions:
                    break
        except ApiException as exc:
            raise translate_plaid_error(exc) from exc

        logger.info(
            "Fetched %d Plaid transactions for account %s (%s → %s)",
            len(transactions), account_id, start, end,
        )
        return AggregatorSyncResult(success=True, transactions=transactions)
