from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from pathtracer.core.models import AddressRisk


class AddressRiskPort(ABC):
    @abstractmethod
    def get_address_risk(self, address: str, network: str) -> Optional[AddressRisk]:
        """None when the provider has no assessment for the address."""
        raise NotImplementedError
