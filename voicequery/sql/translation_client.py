"""
voicequery/sql/translation_client.py
=====================================
Text-to-SQL Client — VoiceQuery

Responsibility:
    - POST {"ddl": <schema>, "question": <utterance>} to the text-to-SQL
      service
    - Enforce a connect timeout separate from the total request timeout
    - Extract the generated query from the "sql" field of the response
    - Map every transport and response failure onto the translation
      taxonomy (timeout, connection, status, missing field)

This module does NOT:
    - Retry failed requests
    - Validate or execute the generated SQL
"""

import json
import logging

import requests

from voicequery.errors import (
    ConnectionFailed,
    MissingFieldError,
    NonSuccessStatus,
    TranslationError,
    TranslationTimeout,
)

logger = logging.getLogger("voicequery.sql.translation_client")

SQL_FIELD = "sql"
DEFAULT_CONNECT_TIMEOUT = 3.0


class TextToSqlClient:
    """HTTP client for the remote text-to-SQL service."""

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        self.connect_timeout = connect_timeout
        self._http = session or requests

    def post(self, endpoint: str, schema: str, question: str, timeout: float) -> dict:
        """
        Send one translation request and return the decoded JSON body.

        Args:
            endpoint: Full URL of the service.
            schema:   Textual schema (DDL) of the queryable dataset.
            question: Natural-language utterance.
            timeout:  Total request timeout in seconds.

        Returns:
            The decoded response body.

        Raises:
            TranslationTimeout: Connect or read timed out.
            ConnectionFailed:   The service could not be reached.
            NonSuccessStatus:   The service answered with a non-2xx status.
            MissingFieldError:  The body is not a JSON object.
        """
        payload = {"ddl": schema, "question": question}
        connect = min(self.connect_timeout, timeout)

        logger.debug("POST %s (question=%r, ddl=%d chars)", endpoint, question, len(schema))
        try:
            resp = self._http.post(
                endpoint,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=(connect, timeout),
            )
        except requests.Timeout as exc:
            raise TranslationTimeout(endpoint, timeout) from exc
        except requests.ConnectionError as exc:
            raise ConnectionFailed(endpoint, str(exc)) from exc
        except requests.RequestException as exc:
            raise TranslationError(
                f"Text-to-SQL request failed: {exc}", endpoint
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise NonSuccessStatus(endpoint, resp.status_code, resp.text)

        try:
            body = resp.json()
        except ValueError as exc:
            raise MissingFieldError(resp.text, SQL_FIELD, endpoint) from exc

        if not isinstance(body, dict):
            raise MissingFieldError(resp.text, SQL_FIELD, endpoint)
        return body

    def generate_sql(self, endpoint: str, schema: str, question: str, timeout: float) -> str:
        """Translate ``question`` into SQL for ``schema``."""
        body = self.post(endpoint, schema, question, timeout)
        sql = parse_sql(body, endpoint)
        logger.info("Text-to-SQL returned %d chars of SQL.", len(sql))
        return sql


def parse_sql(body, endpoint: str = "") -> str:
    """
    Pull the generated query out of a response body.

    Raises:
        MissingFieldError: If "sql" is absent, not a string, or empty.
    """
    sql = body.get(SQL_FIELD) if isinstance(body, dict) else None
    if not isinstance(sql, str) or not sql.strip():
        raise MissingFieldError(_render_body(body), SQL_FIELD, endpoint)
    return sql.strip()


def _render_body(body) -> str:
    try:
        return json.dumps(body)
    except (TypeError, ValueError):
        return str(body)
