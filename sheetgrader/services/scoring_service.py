"""
Exam sheet scoring through a multimodal OpenAI model.

The model reads the sheet image, pulls out student details and answers, and
scores them against the rubric. Its reply is returned untouched; making
sense of it is grading_parser's job.
"""
import json
import base64
import logging

from sheetgrader.config import config, OPENAI_TEMPERATURE

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Sadece geçerli JSON üret. Bir sınav kağıdı görselinden öğrenci bilgilerini (varsa) "
    "ve cevapları ayıkla, verilen kriterlere göre objektif puanla. Her kriter için: "
    "raw_score (0..max_points), weighted_score = raw_score * weight. "
    "Sonunda final_score_100 üret (0..100, tam sayı)."
)

RESPONSE_SCHEMA = """{
  "student": {"ogrenci_ad": "string|null", "ogrenci_no": "string|null", "sinif": "string|null"},
  "items": [{
    "criterion_id": "string",
    "name": "string",
    "max_points": number,
    "weight": number,
    "raw_score": number,
    "weighted_score": number,
    "justification": "string",
    "flags": ["string"]
  }],
  "final_score_100": number,
  "notes": "string"
}"""

RULES = """Kurallar:
- Öğrenci bilgileri kağıtta okunabiliyorsa doldur, değilse null bırak.
- Kriterlerde isim/desc girdi JSON'undan alınır; puanlamayı sadece öğrenci cevabına dayanarak yap.
- Sadece JSON döndür, başka metin ekleme."""


def build_user_prompt(subject: str, exam_code: str, criteria: list) -> str:
    criteria_json = json.dumps(
        [c.model_dump() for c in criteria], ensure_ascii=False, separators=(',', ':')
    )
    return (
        f"Ders: {subject}\nExam code: {exam_code or ''}\n\n"
        f"Kriterler (JSON):\n{criteria_json}\n\n"
        f"JSON Şema:\n{RESPONSE_SCHEMA}\n\n{RULES}"
    )


def build_messages(image_bytes: bytes, mime_type: str, subject: str, exam_code: str, criteria: list) -> list:
    """Chat messages: system rules, then the prompt text plus the sheet image."""
    encoded = base64.b64encode(image_bytes).decode('ascii')
    data_url = f"data:{mime_type or 'image/png'};base64,{encoded}"
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": build_user_prompt(subject, exam_code, criteria)},
                {"type": "image_url", "image_url": {"url": data_url}},
            ],
        },
    ]


def score_exam_sheet(image_bytes: bytes, mime_type: str, subject: str, exam_code: str, criteria: list) -> str:
    """Send the sheet to the model and return its raw JSON text ('{}' if empty)."""
    from openai import OpenAI
    client = OpenAI(api_key=config.openai_api_key)

    logger.info("Scoring exam sheet with %s (%d criteria)", config.openai_model, len(criteria))
    completion = client.chat.completions.create(
        model=config.openai_model,
        response_format={"type": "json_object"},
        temperature=OPENAI_TEMPERATURE,
        messages=build_messages(image_bytes, mime_type, subject, exam_code, criteria),
    )
    if not completion.choices:
        return "{}"
    return completion.choices[0].message.content or "{}"
