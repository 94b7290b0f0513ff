"""Question pack loader for pack YAML files.

Each YAML file under the pack directory defines one QuestionPack. Packs are
ordered by file name (use a numeric prefix such as 01_role_context.yaml) and
assembled into an immutable QuestionCatalog. Catalogs are cached per
directory since packs do not change at runtime.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pydantic
import structlog
import yaml

from wda.core.config import survey_config
from wda.core.exceptions import ConfigurationError
from wda.domain.models.question import QuestionCatalog, QuestionPack

log = structlog.get_logger(__name__)

# Module-level cache (catalog does not change at runtime)
_cache: Dict[Path, QuestionCatalog] = {}


def load_question_pack(path: Path) -> QuestionPack:
    """Load and validate a single question pack.

    Args:
        path: Path to the pack YAML file

    Returns:
        Validated QuestionPack

    Raises:
        FileNotFoundError: Pack file not found
        ConfigurationError: Invalid YAML or pack structure
    """
    if not path.exists():
        raise FileNotFoundError(f"Question pack not found: {path}")

    with open(path, encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path.name}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Question pack {path.name} is not a mapping")

    try:
        pack = QuestionPack.model_validate(data)
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid question pack {path.name}: {e}") from e

    log.debug("question_pack_loaded", pack_id=pack.id, question_count=len(pack.questions))
    return pack


def load_catalog(packs_dir: Optional[Path] = None, use_cache: bool = True) -> QuestionCatalog:
    """Load every pack in a directory into a catalog.

    Args:
        packs_dir: Directory of pack YAML files (defaults to the configured one)
        use_cache: Return a previously loaded catalog for the same directory

    Returns:
        QuestionCatalog with packs in file-name order

    Raises:
        ConfigurationError: Directory missing, a pack invalid, or ids duplicated
    """
    packs_dir = Path(packs_dir or survey_config.question_packs_dir).resolve()

    if use_cache and packs_dir in _cache:
        return _cache[packs_dir]

    if not packs_dir.is_dir():
        raise ConfigurationError(f"Question pack directory not found: {packs_dir}")

    files = sorted([*packs_dir.glob("*.yaml"), *packs_dir.glob("*.yml")])
    packs: List[QuestionPack] = [load_question_pack(p) for p in files]

    try:
        catalog = QuestionCatalog(packs=tuple(packs))
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid question catalog in {packs_dir}: {e}") from e

    _cache[packs_dir] = catalog
    log.info(
        "catalog_loaded",
        path=str(packs_dir),
        pack_count=len(catalog.packs),
        question_count=catalog.question_count(),
    )
    return catalog


def clear_cache() -> None:
    _cache.clear()
