"""
Shared test fixtures for the exam sheet evaluator.
Zero network calls: the AI scoring call and font downloads are faked.
"""
import json
import pytest

from fakes import MemoryFontCache, CountingFetcher


SAMPLE_RESPONSE = {
    "student": {"ogrenci_ad": "Ayşe Öztürk", "ogrenci_no": "1234", "sinif": "10-B"},
    "items": [
        {
            "criterion_id": "K2",
            "name": "Denklem denkleştirme",
            "max_points": 10,
            "weight": 1.5,
            "raw_score": 8,
            "weighted_score": 12,
            "justification": "Katsayılar doğru, bir işaret hatası var.",
            "flags": ["okunaksız", "eksik birim"],
        },
        {
            "criterion_id": "K1",
            "name": "Mol kavramı",
            "max_points": 5,
            "weight": 1,
            "raw_score": 5,
            "weighted_score": 5,
            "justification": "",
            "flags": [],
        },
    ],
    "final_score_100": 87.5,
    "notes": "Genel olarak başarılı.",
}


@pytest.fixture
def sample_response():
    """A well-formed AI grading response as a dict (fresh copy per test)."""
    return json.loads(json.dumps(SAMPLE_RESPONSE))


@pytest.fixture
def sample_raw(sample_response):
    return json.dumps(sample_response, ensure_ascii=False)


@pytest.fixture
def sample_result(sample_raw):
    from sheetgrader.services.grading_parser import parse_grading_result
    return parse_grading_result(sample_raw)


@pytest.fixture
def memory_cache():
    return MemoryFontCache()


@pytest.fixture
def counting_fetcher():
    return CountingFetcher()


@pytest.fixture
def app(monkeypatch):
    """Flask app with an API key set and no font lookups."""
    from sheetgrader.app import create_app
    from sheetgrader.config import config
    from sheetgrader.services import font_resolver

    monkeypatch.setattr(config, "openai_api_key", "test-key")
    monkeypatch.setattr(font_resolver, "resolve_unicode_font", lambda: None)
    flask_app = create_app()
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def fake_scoring(monkeypatch, sample_raw):
    """Replace the AI call; returns the list of recorded calls."""
    from sheetgrader.services import scoring_service

    calls = []

    def _score(image_bytes, mime_type, subject, exam_code, criteria):
        calls.append({
            "image_bytes": image_bytes,
            "mime_type": mime_type,
            "subject": subject,
            "exam_code": exam_code,
            "criteria": criteria,
        })
        return sample_raw

    monkeypatch.setattr(scoring_service, "score_exam_sheet", _score)
    return calls
