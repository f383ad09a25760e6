#!/usr/bin/env python3
"""
HTTP client for the external wallet-signing service that submits burn transfers.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request

from stoker import (
    TOKEN_369_ETERNAL,
    TOKEN_ETH,
    TOKEN_SOL,
    InvocationError,
    SignerSettings,
    UnsupportedActionError,
    logger,
)


UTC = timezone.utc
DEFAULT_TIMEOUT_MS = 120_000
BURN_ADDRESS_DEAD = "0x000000000000000000000000000000000000dEaD"
BURN_ADDRESS_369 = "0x0000000000000000000000000000000000000369"
UNSUPPORTED_TOKENS = {
    TOKEN_369_ETERNAL: "369 Eternal burn not yet implemented",
    TOKEN_SOL: "SOL burn not yet implemented",
}


def _non_empty(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text if text else None


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def get_burn_address(resonant_369_mode: bool) -> str:
    return BURN_ADDRESS_369 if resonant_369_mode else BURN_ADDRESS_DEAD


@dataclass
class SignerContext:
    endpoint: Optional[str]
    api_key: Optional[str]

    @staticmethod
    def from_env() -> "SignerContext":
        return SignerContext(
            endpoint=_non_empty(os.getenv("STOKER_SIGNER_ENDPOINT")),
            api_key=_non_empty(os.getenv("STOKER_SIGNER_API_KEY")),
        )


class SignerInvoker:
    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        resonant_369_mode: bool = True,
    ) -> None:
        env = SignerContext.from_env()
        self.endpoint = _non_empty(endpoint) or env.endpoint
        self.api_key = _non_empty(api_key) or env.api_key
        self.timeout_ms = timeout_ms if timeout_ms > 0 else DEFAULT_TIMEOUT_MS
        self.resonant_369_mode = resonant_369_mode

    @classmethod
    def from_settings(cls, settings: SignerSettings) -> "SignerInvoker":
        return cls(
            endpoint=settings.endpoint,
            api_key=settings.api_key,
            timeout_ms=settings.timeout_ms,
            resonant_369_mode=settings.resonant_369_mode,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.endpoint)

    @property
    def burn_address(self) -> str:
        return get_burn_address(self.resonant_369_mode)

    def invoke(self, token_type: str, amount: str) -> str:
        if token_type in UNSUPPORTED_TOKENS:
            raise UnsupportedActionError(UNSUPPORTED_TOKENS[token_type])
        if token_type != TOKEN_ETH:
            raise UnsupportedActionError("Unknown token type")
        logger.info("Burning %s %s to %s", amount, token_type, self.burn_address)
        return self._post_transfer(token_type, amount)

    def _post_transfer(self, token_type: str, amount: str) -> str:
        if not self.endpoint:
            raise InvocationError("No signer endpoint configured")

        payload: Dict[str, Any] = {
            "tokenType": token_type,
            "amount": amount,
            "to": self.burn_address,
            "requestedAt": _now_iso(),
        }
        url = self.endpoint.rstrip("/") + "/v1/transfers"
        data = json.dumps(payload).encode("utf-8")
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        req = urllib_request.Request(url=url, data=data, method="POST", headers=headers)

        try:
            with urllib_request.urlopen(req, timeout=max(0.1, self.timeout_ms / 1000.0)) as response:
                if not 200 <= response.status < 300:
                    raise InvocationError(f"Signer responded with HTTP {response.status}")
                body = response.read().decode("utf-8")
        except urllib_error.HTTPError as exc:
            raise InvocationError(f"Signer responded with HTTP {exc.code}: {exc.reason}") from exc
        except urllib_error.URLError as exc:
            raise InvocationError(f"Signer unreachable: {exc.reason}") from exc
        except OSError as exc:
            raise InvocationError(f"Signer request failed: {exc}") from exc

        try:
            result = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvocationError("Signer returned invalid JSON") from exc
        tx_hash = result.get("txHash") if isinstance(result, dict) else None
        if not isinstance(tx_hash, str) or not tx_hash:
            error = result.get("error") if isinstance(result, dict) else None
            raise InvocationError(error or "Signer returned no transaction hash")
        logger.info("Burn transaction sent: %s", tx_hash)
        return tx_hash
