"""LedgerClient: typed operations on the ledger (ERP) API.

Every HTTP request is wrapped in a closure and submitted to the shared
``LedgerDispatcher``, so spacing, retry and circuit breaking apply to all
of them.  The ledger speaks form-encoded POSTs carrying ``token`` and
``formato=json`` and answers with a ``retorno`` envelope:

    {"retorno": {"status": "OK", ...}}
    {"retorno": {"status": "Erro", "erros": [{"erro": "..."}]}}

HTTP failures are raised inside the dispatched closure (so the backoff
policy sees their status); envelope errors are checked afterwards and
raised as ``LedgerRejectedError``, which is never retried.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from src.core.config import Settings
from src.core.errors import LedgerConfigurationError, LedgerRejectedError, LedgerRequestError
from src.ledger_dispatcher import AttemptSignal, LedgerDispatcher
from src.models.schemas import PayableEntry
from src.security.input_validators import sanitize_text

logger = logging.getLogger(__name__)

# The ledger returns at most this many records per search page
_PAGE_SIZE = 20

# Error texts the ledger uses for an empty search result
_NO_RECORDS_MARKERS = (
    "Nenhum registro",
    "não retornou registros",
    "nao retornou registros",
)

# Maximum length of a response body echoed into an error message
_MAX_DETAIL_LEN = 200


@dataclass
class InboundInvoice:
    """Summary of an inbound invoice returned by the invoice search."""

    id: str
    number: str
    series: str
    supplier: str
    amount: float
    issued_on: str
    status: str


def format_document_number(due_date: str, supplier: str) -> str:
    """Build the standard document number ``MM/YY - Cartão - {supplier}``.

    Returns an empty string when *due_date* is not ``DD/MM/YYYY``.
    """
    if not due_date:
        return ""
    parts = due_date.split("/")
    if len(parts) != 3:
        return ""
    return f"{parts[1].zfill(2)}/{parts[2][-2:]} - Cartão - {supplier}"


def _error_messages(retorno: dict) -> list[str]:
    errors = retorno.get("erros") or []
    if isinstance(errors, list):
        return [str(e.get("erro", e)) if isinstance(e, dict) else str(e) for e in errors]
    return [json.dumps(errors, ensure_ascii=False)]


def _is_no_records(messages: list[str]) -> bool:
    return any(marker in message for message in messages for marker in _NO_RECORDS_MARKERS)


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


class LedgerClient:
    """Client for the ledger API, routed through a ``LedgerDispatcher``.

    Args:
        settings:   Application settings (URL, token, timeout, page limit).
        dispatcher: Shared dispatcher every request is submitted to.
        client:     Optional pre-built ``httpx.AsyncClient`` (tests inject
                    one with a mock transport).
    """

    def __init__(
        self,
        settings: Settings,
        dispatcher: LedgerDispatcher,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = settings.LEDGER_API_URL
        self._token = settings.LEDGER_API_TOKEN
        self._timeout = settings.LEDGER_REQUEST_TIMEOUT_SECONDS
        self._max_pages = settings.LEDGER_SEARCH_MAX_PAGES
        self._dispatcher = dispatcher
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url)
        return self._client

    async def call(self, endpoint: str, params: dict[str, str], *, skip_retry: bool = False) -> dict:
        """POST *params* to *endpoint* through the dispatcher.

        Returns the ``retorno`` envelope without checking its status.

        Raises:
            LedgerConfigurationError: If no API token is configured.
            LedgerRequestError: If the ledger answered with HTTP >= 400.
            CircuitOpenError: If the dispatcher refused the call.
        """
        if not self._token:
            raise LedgerConfigurationError("LEDGER_API_TOKEN is not configured")

        form = {"token": self._token, "formato": "json", **params}
        client = self._get_client()

        async def work(signal: AttemptSignal) -> dict:
            logger.debug("POST %s (attempt %d)", endpoint, signal.attempt)
            response = await client.post(endpoint, data=form, timeout=self._timeout)
            if response.status_code >= 400:
                raise LedgerRequestError(endpoint, response.status_code, response.text[:_MAX_DETAIL_LEN])
            try:
                return response.json()
            except ValueError:
                return {}

        body = await self._dispatcher.submit(work, skip_retry=skip_retry, label=endpoint)
        if not isinstance(body, dict):
            return {}
        retorno = body.get("retorno")
        return retorno if isinstance(retorno, dict) else {}

    # ── Accounts payable ─────────────────────────────────────────────

    async def include_payable(self, entry: PayableEntry) -> str | None:
        """Create an account payable for *entry*; return the ledger id."""
        endpoint = "conta.pagar.incluir.php"
        conta = {
            "data": entry.issue_date or entry.due_date,
            "vencimento": entry.due_date,
            "valor": f"{entry.amount:.2f}",
            "categoria": entry.category,
            "historico": sanitize_text(entry.description),
            "nro_documento": entry.document_number or format_document_number(entry.due_date, entry.supplier),
            "competencia": entry.competence,
            "forma_pagamento": "",
            "cliente": {"nome": entry.supplier},
        }
        retorno = await self.call(endpoint, {"conta": json.dumps({"conta": conta}, ensure_ascii=False)})

        if retorno.get("status") != "OK":
            messages = _error_messages(retorno)
            logger.warning("Ledger refused payable %r: %s", entry.description, "; ".join(messages))
            raise LedgerRejectedError(endpoint, messages)

        registros = retorno.get("registros") or []
        payable_id = None
        if registros:
            payable_id = (registros[0].get("registro") or {}).get("id")
        payable_id = payable_id or retorno.get("id")
        logger.info(
            "Payable booked: %r %.2f → %s (id %s)",
            entry.description,
            entry.amount,
            entry.category,
            payable_id,
        )
        return str(payable_id) if payable_id is not None else None

    async def settle_payable(
        self,
        payable_id: str,
        source_account: str,
        paid_on: str,
        amount: float,
    ) -> None:
        """Mark a payable as paid from *source_account* (a cash/bank account name)."""
        endpoint = "conta.pagar.baixar.php"
        conta = {
            "id": payable_id,
            "contaOrigem": source_account,
            "data": paid_on,
            "valorPago": f"{amount:.2f}",
        }
        retorno = await self.call(endpoint, {"conta": json.dumps({"conta": conta}, ensure_ascii=False)})
        if retorno.get("status") != "OK":
            raise LedgerRejectedError(endpoint, _error_messages(retorno))
        logger.info("Payable %s settled from %s", payable_id, source_account)

    # ── Invoices ─────────────────────────────────────────────────────

    async def search_inbound_invoices(self, start: str, end: str) -> list[InboundInvoice]:
        """Return inbound invoices issued between *start* and *end* (``DD/MM/YYYY``).

        Stops after ``LEDGER_SEARCH_MAX_PAGES`` pages to bound the time spent
        behind the dispatcher's spacing.
        """
        endpoint = "notas.fiscais.pesquisa.php"
        invoices: list[InboundInvoice] = []
        page = 1

        while True:
            retorno = await self.call(
                endpoint,
                {"tipo": "E", "dataInicial": start, "dataFinal": end, "pagina": str(page)},
            )
            if retorno.get("status") != "OK":
                messages = _error_messages(retorno)
                if _is_no_records(messages):
                    break
                raise LedgerRejectedError(endpoint, messages)

            records = retorno.get("notas_fiscais") or []
            for record in records:
                nota = record.get("nota_fiscal", record)
                cliente = nota.get("cliente") or {}
                invoices.append(
                    InboundInvoice(
                        id=str(nota.get("id", "")),
                        number=str(nota.get("numero", "")),
                        series=str(nota.get("serie", "")),
                        supplier=nota.get("nome_cliente") or cliente.get("nome", ""),
                        amount=_to_float(nota.get("valor")),
                        issued_on=nota.get("data_emissao", ""),
                        status=nota.get("situacao", ""),
                    )
                )

            if len(records) < _PAGE_SIZE:
                break
            if page >= self._max_pages:
                logger.info("Invoice search capped at %d pages (%d invoices)", self._max_pages, len(invoices))
                break
            page += 1

        logger.info("Found %d inbound invoices between %s and %s", len(invoices), start, end)
        return invoices

    async def close(self) -> None:
        """Close the pooled httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
