from abc import ABC, abstractmethod

from quote_engine.models import RateSnapshot


class RateProvider(ABC):
    @abstractmethod
    def get_rates(self) -> RateSnapshot:
        """Returns the current metal spot prices and stone setting costs. May be empty."""
        raise NotImplementedError


class MetalPriceProvider(ABC):
    provider_name: str

    @abstractmethod
    def fetch_latest_per_oz(self, symbols: list[str]) -> dict[str, float]:
        """Returns {symbol: price_per_troy_oz}."""
        raise NotImplementedError
