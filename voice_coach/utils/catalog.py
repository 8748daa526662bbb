import logging
from concurrent.futures import ThreadPoolExecutor

from .models import ModelListing
from .providers import ProviderRegistry

logger = logging.getLogger(__name__)


class ModelCatalog:
    """Lists selectable models across providers, tolerating per-provider failures."""

    def __init__(self, providers: ProviderRegistry):
        self.providers = providers

    def list_models(self) -> ModelListing:
        listing = ModelListing()
        errors = []
        adapters = list(self.providers.values())
        if not adapters:
            return listing

        with ThreadPoolExecutor(max_workers=len(adapters)) as pool:
            futures = [(adapter, pool.submit(adapter.list_models)) for adapter in adapters]
            # Results are merged in registry order regardless of completion order
            for adapter, future in futures:
                try:
                    listing.models.extend(future.result())
                except Exception as e:
                    logger.error("Listing %s models failed: %s", adapter.provider.value, e)
                    errors.append(f"{adapter.provider.value}: {e}")

        if errors:
            listing.error = "; ".join(errors)
        return listing
