# bakery_pos/config.py
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

log = logging.getLogger("bakery-pos.config")

CONFIG_FILE = Path(
    os.getenv("BAKERY_POS_CONFIG") or (Path(__file__).resolve().parent / "config.json")
)

@dataclass
class PrinterConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9100
    timeout: int = 5
    width_chars: int = 42
    drawer_pin: int = 2

@dataclass
class DeliveryConfig:
    # two-tier default: nearest zone vs everything else
    nearest_zone: str = "DUBAI"
    nearest_charge_cents: int = 3000
    other_charge_cents: int = 5000
    # per-zone overrides, win over the two tiers
    zone_charges: Dict[str, int] = field(default_factory=dict)
    zones: List[str] = field(default_factory=lambda: [
        "DUBAI", "ABU_DHABI", "SHARJAH", "AJMAN",
        "UMM_AL_QUWAIN", "RAS_AL_KHAIMAH", "FUJAIRAH",
    ])

    def charge_for(self, zone: str) -> int:
        key = (zone or "").strip().upper()
        if key in self.zone_charges:
            return int(self.zone_charges[key])
        if key == self.nearest_zone.upper():
            return int(self.nearest_charge_cents)
        return int(self.other_charge_cents)

@dataclass
class RoutingConfig:
    # category slug -> teams implied when the product carries no explicit flag
    category_teams: Dict[str, List[str]] = field(default_factory=lambda: {
        "cakes": ["KITCHEN"],
        "flowers": ["DESIGN"],
        "sets": ["KITCHEN", "DESIGN"],
    })

@dataclass
class ServicesConfig:
    base_url: str = "http://127.0.0.1:5000"
    api_token: Optional[str] = None
    timeout_seconds: float = 15.0

@dataclass
class AppConfig:
    printer: PrinterConfig = field(default_factory=PrinterConfig)
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    routing: RoutingConfig = field(default_factory=RoutingConfig)
    services: ServicesConfig = field(default_factory=ServicesConfig)
    currency: str = "AED"

def _merge(dst: dict, src: dict) -> dict:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            dst[k] = _merge(dst[k], v)
        else:
            dst[k] = v
    return dst

def _defaults() -> dict:
    delivery = DeliveryConfig()
    return {
        "printer": {
            "enabled": False,
            "host": "127.0.0.1",
            "port": 9100,
            "timeout": 5,
            "width_chars": 42,
            "drawer_pin": 2,
        },
        "delivery": {
            "nearest_zone": delivery.nearest_zone,
            "nearest_charge_cents": delivery.nearest_charge_cents,
            "other_charge_cents": delivery.other_charge_cents,
            "zone_charges": {},
            "zones": list(delivery.zones),
        },
        "routing": {
            "category_teams": RoutingConfig().category_teams,
        },
        "services": {
            "base_url": "http://127.0.0.1:5000",
            "api_token": None,
            "timeout_seconds": 15.0,
        },
        "currency": "AED",
    }

def build_config(data: dict) -> AppConfig:
    p = data["printer"]
    d = data["delivery"]
    r = data["routing"]
    s = data["services"]
    return AppConfig(
        printer=PrinterConfig(
            enabled=bool(p.get("enabled", False)),
            host=str(p.get("host", "127.0.0.1")),
            port=int(p.get("port", 9100)),
            timeout=int(p.get("timeout", 5)),
            width_chars=int(p.get("width_chars", 42)),
            drawer_pin=int(p.get("drawer_pin", 2)),
        ),
        delivery=DeliveryConfig(
            nearest_zone=str(d.get("nearest_zone", "DUBAI")).upper(),
            nearest_charge_cents=int(d.get("nearest_charge_cents", 3000)),
            other_charge_cents=int(d.get("other_charge_cents", 5000)),
            zone_charges={str(k).upper(): int(v) for k, v in (d.get("zone_charges") or {}).items()},
            zones=[str(z).upper() for z in (d.get("zones") or [])],
        ),
        routing=RoutingConfig(
            category_teams={
                str(k).lower(): [str(t).upper() for t in (v or [])]
                for k, v in (r.get("category_teams") or {}).items()
            },
        ),
        services=ServicesConfig(
            base_url=str(s.get("base_url") or "").rstrip("/"),
            api_token=s.get("api_token") or os.getenv("BAKERY_POS_API_TOKEN") or None,
            timeout_seconds=float(s.get("timeout_seconds", 15.0)),
        ),
        currency=str(data.get("currency") or "AED"),
    )

def load_config(path: Optional[Path] = None) -> AppConfig:
    data = _defaults()
    cfg_file = path or CONFIG_FILE
    if cfg_file.exists():
        try:
            file_data = json.loads(cfg_file.read_text(encoding="utf-8"))
            data = _merge(data, file_data or {})
        except (OSError, ValueError) as e:
            # malformed file -> keep defaults
            log.warning("config file %s ignored: %s", cfg_file, e)
    return build_config(data)

# singleton loaded at import
CONFIG = load_config()
