"""Tests for question pack loading."""

from pathlib import Path

import pytest

from wda.core.catalog_loader import clear_cache, load_catalog, load_question_pack
from wda.core.exceptions import ConfigurationError
from wda.domain.models.question import QuestionType
from wda.domain.models.session import SurveyMode
from wda.services.question_selector import QuestionSelector

PACKS_DIR = Path(__file__).resolve().parents[2] / "config" / "question_packs"

PACK_YAML = """
id: {pack_id}
name:
  de: Testpaket
  en: Test pack
version: 1.0.0
questions:
  - id: {question_id}
    text:
      de: Wie geht's?
      en: How are you?
    type: text
"""


@pytest.fixture(autouse=True)
def fresh_cache():
    clear_cache()
    yield
    clear_cache()


def test_bundled_packs_load():
    catalog = load_catalog(PACKS_DIR, use_cache=False)

    assert [p.id for p in catalog.packs] == [
        "role-context",
        "development-workflow",
        "tools-environment",
        "collaboration",
    ]
    review = catalog.get_question("workflow-code-review")
    assert review.type == QuestionType.SCALE
    assert catalog.pack_of("tools-editor") == "tools-environment"


def test_bundled_catalog_per_mode():
    selector = QuestionSelector(load_catalog(PACKS_DIR))

    counts = {
        mode: len(selector.questions_for(selector.select_pack_ids(mode), mode))
        for mode in SurveyMode
    }

    assert counts == {SurveyMode.QUICK: 8, SurveyMode.STANDARD: 11, SurveyMode.DEEP: 13}


def test_catalog_is_cached():
    assert load_catalog(PACKS_DIR) is load_catalog(PACKS_DIR)


def test_packs_ordered_by_file_name(tmp_path):
    (tmp_path / "02_b.yaml").write_text(PACK_YAML.format(pack_id="b", question_id="qb"))
    (tmp_path / "01_a.yml").write_text(PACK_YAML.format(pack_id="a", question_id="qa"))

    catalog = load_catalog(tmp_path)

    assert [p.id for p in catalog.packs] == ["a", "b"]


def test_duplicate_question_ids_rejected(tmp_path):
    (tmp_path / "01.yaml").write_text(PACK_YAML.format(pack_id="a", question_id="same"))
    (tmp_path / "02.yaml").write_text(PACK_YAML.format(pack_id="b", question_id="same"))

    with pytest.raises(ConfigurationError, match="Invalid question catalog"):
        load_catalog(tmp_path)


def test_invalid_pack(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("id: x\nversion: one\nquestions: []\n")

    with pytest.raises(ConfigurationError, match="broken.yaml"):
        load_question_pack(path)


def test_invalid_yaml(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("id: [unclosed\n")

    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_question_pack(path)


def test_missing_pack_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_question_pack(tmp_path / "nope.yaml")


def test_missing_directory(tmp_path):
    with pytest.raises(ConfigurationError, match="directory not found"):
        load_catalog(tmp_path / "missing")
