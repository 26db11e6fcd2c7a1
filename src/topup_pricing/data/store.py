"""
Organization Store - In-memory organization configuration.

Loads pricing rules and discounts from CSV tables and storefront/product
settings from JSON, validating every row at this boundary. The engine only
ever receives already-loaded records.
"""
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterator, Optional

import pandas as pd

from ..engine.discounts import DiscountRecord
from ..engine.models import ResaleProduct, StorefrontSettings
from ..engine.rule_matcher import PricingRule
from ..logging_config import get_logger
from ..rules.records import (
    RecordError,
    parse_discount,
    parse_pricing_rule,
    parse_resale_product,
    parse_storefront_settings,
)

log = get_logger(__name__)

RULES_FILE = 'pricing_rules.csv'
DISCOUNTS_FILE = 'discounts.csv'
STOREFRONTS_FILE = 'storefronts.json'
PRODUCTS_FILE = 'products.json'


@dataclass
class OrganizationConfig:
    """Everything the engine needs for one organization."""
    org_id: str
    rules: list[PricingRule] = field(default_factory=list)
    discounts: list[DiscountRecord] = field(default_factory=list)
    storefront: Optional[StorefrontSettings] = None
    products: dict[str, ResaleProduct] = field(default_factory=dict)


class OrganizationStore:
    """Organization configs keyed by org id."""

    def __init__(self):
        self._orgs: dict[str, OrganizationConfig] = {}
        self.errors: list[str] = []

    def __contains__(self, org_id: str) -> bool:
        return org_id in self._orgs

    def __iter__(self) -> Iterator[OrganizationConfig]:
        return iter(self._orgs.values())

    def get(self, org_id: str) -> Optional[OrganizationConfig]:
        return self._orgs.get(org_id)

    def get_or_create(self, org_id: str) -> OrganizationConfig:
        if org_id not in self._orgs:
            self._orgs[org_id] = OrganizationConfig(org_id=org_id)
        return self._orgs[org_id]

    def upsert(self, config: OrganizationConfig) -> OrganizationConfig:
        self._orgs[config.org_id] = config
        return config

    @classmethod
    def load(cls, data_dir: Path) -> 'OrganizationStore':
        """
        Load every configuration file found in data_dir.

        Missing files are normal (nothing configured). Invalid rows are
        skipped and reported in `errors`.
        """
        store = cls()
        store._load_table(data_dir / RULES_FILE, parse_pricing_rule,
                          lambda org, rule: org.rules.append(rule))
        store._load_table(data_dir / DISCOUNTS_FILE, parse_discount,
                          lambda org, discount: org.discounts.append(discount))
        store._load_json(data_dir / STOREFRONTS_FILE, parse_storefront_settings,
                         lambda org, settings: setattr(org, 'storefront', settings))
        store._load_json(data_dir / PRODUCTS_FILE, parse_resale_product,
                         lambda org, product: org.products.__setitem__(product.sku_code, product))

        log.info(
            "store_loaded",
            data_dir=str(data_dir),
            organizations=len(store._orgs),
            errors=len(store.errors),
        )
        for error in store.errors:
            log.warning("invalid_record", detail=error)
        return store

    @staticmethod
    def _read_csv(path: Path) -> pd.DataFrame:
        df = pd.read_csv(path, dtype=str).fillna('')
        # Strip all strings and headers
        df.columns = [c.strip() for c in df.columns]
        for col in df.columns:
            df[col] = df[col].astype(str).str.strip()
        return df

    def _load_table(self, path: Path, parse: Callable, attach: Callable):
        if not path.exists():
            return
        try:
            df = self._read_csv(path)
        except (pd.errors.EmptyDataError, pd.errors.ParserError) as e:
            self.errors.append(f"{path.name}: unreadable table ({e})")
            return
        if 'org_id' not in df.columns:
            self.errors.append(f"{path.name}: missing org_id column")
            return

        for line_num, row in enumerate(df.to_dict(orient='records'), start=2):  # +2 for 1-indexed header row
            org_id = row.get('org_id', '')
            if not org_id:
                self.errors.append(f"{path.name} line {line_num}: org_id is required")
                continue
            try:
                record = parse(row)
            except RecordError as e:
                self.errors.append(f"{path.name} line {line_num}: {e}")
                continue
            attach(self.get_or_create(org_id), record)

    def _load_json(self, path: Path, parse: Callable, attach: Callable):
        if not path.exists():
            return
        try:
            with open(path, 'r', encoding='utf-8') as f:
                entries = json.load(f)
        except json.JSONDecodeError as e:
            self.errors.append(f"{path.name}: invalid JSON ({e})")
            return
        if not isinstance(entries, list):
            self.errors.append(f"{path.name}: expected a list of objects")
            return

        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                self.errors.append(f"{path.name}[{index}]: expected an object")
                continue
            org_id = entry.get('orgId') or entry.get('org_id')
            if not org_id:
                self.errors.append(f"{path.name}[{index}]: orgId is required")
                continue
            try:
                record = parse(entry)
            except RecordError as e:
                self.errors.append(f"{path.name}[{index}]: {e}")
                continue
            attach(self.get_or_create(str(org_id)), record)
