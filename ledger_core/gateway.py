"""
Currency Conversion Gateway Module

Async boundary that turns a foreign-currency amount into the base currency
before a deposit is applied. The HTTP implementation talks to a
Frankfurter-compatible rates service; the static implementation converts
from a local rate table.
"""

import httpx
import time
from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Dict, Iterable, Optional

from .currency import Currency, ExchangeRate, validate_decimal_precision
from .errors import ConversionMalformed, ConversionUnavailable
from .logging_config import get_logger

logger = get_logger("ledger.gateway")


class ConversionGateway(ABC):
    """Converts amounts into the base currency"""

    def __init__(self, base_currency: Currency = Currency.INR):
        self.base_currency = base_currency

    @abstractmethod
    async def convert(self, amount: Decimal, from_currency: Currency) -> Decimal:
        """
        Convert amount from from_currency into the base currency.

        Raises:
            ConversionUnavailable: The rate source could not be used
            ConversionMalformed: The rate source answered without a usable rate
        """
        pass

    async def aclose(self) -> None:
        """Release resources (default no-op)"""
        pass

    async def __aenter__(self) -> 'ConversionGateway':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class FrankfurterGateway(ConversionGateway):
    """REST client for the Frankfurter exchange rate API"""

    def __init__(
        self,
        base_url: str = "https://api.frankfurter.app",
        base_currency: Currency = Currency.INR,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None
    ):
        super().__init__(base_currency)
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def convert(self, amount: Decimal, from_currency: Currency) -> Decimal:
        """Ask the service for `amount` of `from_currency` expressed in the base currency

        Args:
            amount: Positive amount to convert
            from_currency: Source currency

        Returns:
            Converted amount rounded to base currency precision
        """
        if from_currency == self.base_currency:
            return validate_decimal_precision(amount, self.base_currency)

        target = self.base_currency.code
        params = {"amount": str(amount), "from": from_currency.code, "symbols": target}

        start = time.time()
        try:
            response = await self._client.get(
                f"{self.base_url}/latest", params=params, timeout=self.timeout
            )
        except httpx.HTTPError as e:
            logger.error(f"Conversion service unreachable: {e}")
            raise ConversionUnavailable(f"Conversion service unreachable: {e}") from e

        latency_ms = (time.time() - start) * 1000

        if response.status_code != 200:
            logger.warning(f"Conversion service returned {response.status_code}: {response.text}")
            raise ConversionUnavailable(f"Conversion service returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise ConversionMalformed("Conversion response is not JSON") from e

        try:
            raw_value = data["rates"][target]
        except (KeyError, TypeError):
            raise ConversionMalformed(f"Conversion response has no {target} rate")

        if isinstance(raw_value, bool):
            raise ConversionMalformed(f"Conversion response has a non-numeric {target} rate")
        try:
            converted = Decimal(str(raw_value))
        except InvalidOperation:
            raise ConversionMalformed(f"Conversion response has a non-numeric {target} rate")

        if not converted.is_finite() or converted <= Decimal('0'):
            raise ConversionMalformed(f"Conversion response has an unusable {target} rate: {raw_value}")

        logger.debug(
            f"Converted {amount} {from_currency.code} -> {converted} {target} in {latency_ms:.1f}ms"
        )
        return validate_decimal_precision(converted, self.base_currency)

    async def health_check(self) -> bool:
        """Check if the conversion service answers"""
        try:
            r = await self._client.get(f"{self.base_url}/currencies", timeout=self.timeout)
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        """Close the HTTP client if this gateway created it"""
        if self._owns_client:
            await self._client.aclose()


class StaticRateGateway(ConversionGateway):
    """Offline gateway converting with a fixed table of mid-market rates"""

    def __init__(self, base_currency: Currency = Currency.INR,
                 rates: Optional[Iterable[ExchangeRate]] = None):
        super().__init__(base_currency)
        self._rates: Dict[tuple, ExchangeRate] = {}
        for rate in rates or ():
            self.set_rate(rate)

    def set_rate(self, rate: ExchangeRate) -> None:
        """Set exchange rate for a currency pair, and its reverse"""
        self._rates[(rate.from_currency, rate.to_currency)] = rate
        reverse = rate.inverse()
        self._rates[(reverse.from_currency, reverse.to_currency)] = reverse

    def get_rate(self, from_currency: Currency) -> Optional[ExchangeRate]:
        """Get the rate from a currency into the base currency"""
        return self._rates.get((from_currency, self.base_currency))

    async def convert(self, amount: Decimal, from_currency: Currency) -> Decimal:
        if from_currency == self.base_currency:
            return validate_decimal_precision(amount, self.base_currency)

        rate = self.get_rate(from_currency)
        if not rate:
            raise ConversionUnavailable(
                f"No exchange rate available for {from_currency.code} -> {self.base_currency.code}"
            )
        return validate_decimal_precision(amount * rate.mid, self.base_currency)
