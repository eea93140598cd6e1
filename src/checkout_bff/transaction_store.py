# src/checkout_bff/transaction_store.py

import typing

import httpx

from .config import settings


class TransactionStoreError(Exception):
    pass


class SupabaseTableClient:
    """Minimal read-only client for the PostgREST table API."""

    def __init__(
            self,
            http_client: httpx.AsyncClient,
            base_url: str = settings.REST_BASE_URL,
            api_key: str = settings.SUPABASE_SERVICE_ROLE_KEY or settings.SUPABASE_ANON_KEY,
    ):
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    async def select(
            self,
            table: str,
            columns: str = "*",
            filters: typing.Optional[typing.Dict[str, typing.Any]] = None,
            order_by: typing.Optional[str] = None,
            descending: bool = True,
            limit: typing.Optional[int] = None,
    ) -> typing.List[dict]:
        params = {"select": columns}
        for column, value in (filters or {}).items():
            params[column] = f"eq.{value}"
        if order_by:
            params["order"] = f"{order_by}.{'desc' if descending else 'asc'}"
        if limit is not None:
            params["limit"] = str(limit)
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        url = f"{self.base_url}/{table}"
        try:
            response = await self.http_client.get(url, params=params, headers=headers)
            response.raise_for_status()
            rows = response.json()
        except httpx.HTTPStatusError as e:
            raise TransactionStoreError(
                f"Query on {table} failed: {e.response.status_code} - {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise TransactionStoreError(f"Could not connect to table API: {e}") from e
        except ValueError as e:
            raise TransactionStoreError(f"Query on {table} returned invalid JSON.") from e
        if not isinstance(rows, list):
            raise TransactionStoreError(f"Query on {table} returned {type(rows).__name__}, expected a list.")
        return rows

    async def maybe_single(self, table: str, **kwargs) -> typing.Optional[dict]:
        rows = await self.select(table, limit=1, **kwargs)
        return rows[0] if rows else None
