"""
gbbackup - backup and restore engine for the GadgetBoy POS record store.

Snapshots named record collections, filters and groups them into export
bundles, and writes them as plain JSON or as a tamper-evident,
password-encrypted ``.gbpos`` container.

Key Features:
    - Best-effort concurrent snapshots of any set of collections
    - Schedule-derived calendar entries are never backed up
    - Tile selections with per-collection filters, OR-combined
    - AES-256-GCM encryption with PBKDF2-SHA256 key derivation
    - Side-effect-free preview of plain and encrypted backups
    - Whole-collection restore with per-collection failure reporting
"""

__version__ = "0.1.0"

from gbbackup.config.settings import Settings, load_config

__all__ = [
    "__version__",
    "Settings",
    "load_config",
]
