from typing import List

from ..config import SeedConfig
from .base import NetworkProvider, Provider, ProviderStats, apply_portion_units
from .ifct import IfctProvider
from .off import OpenFoodFactsProvider
from .usda import UsdaProvider

def default_providers(cfg: SeedConfig, usda: bool = True, off: bool = True) -> List[Provider]:
    """Bulk import first, then the network sources, in merge order."""
    out: List[Provider] = [IfctProvider(cfg.ifct_csv)]
    if usda:
        out.append(UsdaProvider(cfg.usda_api_key, queries=cfg.usda_queries, fdc_ids=cfg.usda_fdc_ids,
                                page_size=cfg.usda_page_size, timeout_s=cfg.http_timeout_s,
                                delay_s=cfg.provider_delay_s))
    if off:
        out.append(OpenFoodFactsProvider(cfg.off_barcodes, disabled=cfg.off_disable,
                                         timeout_s=cfg.http_timeout_s, delay_s=cfg.provider_delay_s))
    return out
