from dataclasses import dataclass

from personal_cloud.core.config import Settings
from personal_cloud.services.catalog import DocumentCatalog
from personal_cloud.services.outcomes import Admission, Admitted, Rejected
from personal_cloud.utils.formatting import format_size


@dataclass(frozen=True)
class StorageUsage:
    used_bytes: int
    max_bytes: int
    is_premium: bool

    @property
    def percentage_used(self) -> float:
        if self.max_bytes <= 0:
            return 100.0
        return round(self.used_bytes / self.max_bytes * 100, 2)

    @property
    def used_formatted(self) -> str:
        return format_size(self.used_bytes)

    @property
    def max_formatted(self) -> str:
        return format_size(self.max_bytes)


class QuotaAccountant:
    """Sums an owner's catalog rows and compares them against the tier ceiling."""

    def __init__(self, catalog: DocumentCatalog, settings: Settings):
        self.catalog = catalog
        self.settings = settings

    def ceiling(self, is_premium: bool) -> int:
        return int(self.settings.quota_premium_bytes if is_premium else self.settings.quota_standard_bytes)

    def usage(self, owner_id: str, is_premium: bool) -> StorageUsage:
        return StorageUsage(
            used_bytes=self.catalog.sum_sizes(owner_id),
            max_bytes=self.ceiling(is_premium),
            is_premium=bool(is_premium),
        )

    def check(self, owner_id: str, is_premium: bool, size_bytes: int) -> Admission:
        used = self.catalog.sum_sizes(owner_id)
        ceiling = self.ceiling(is_premium)
        if used + max(int(size_bytes), 0) > ceiling:
            return Rejected(reason="quota_exceeded", used=used, limit=ceiling)
        return Admitted(used=used, limit=ceiling)
