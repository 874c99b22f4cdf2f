"""
Evaluation API routes.
Accepts an exam sheet image and rubric, returns the graded .docx form.
"""
import logging

from flask import Blueprint, Response, request

from sheetgrader.config import config
from sheetgrader.services import scoring_service, font_resolver
from sheetgrader.services.grading_parser import parse_grading_response, parse_rubric
from sheetgrader.services.document_generator import assemble_docx
from sheetgrader.services.filenames import attachment_filename

logger = logging.getLogger(__name__)

evaluate_bp = Blueprint('evaluate', __name__)

DOCX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'

NO_CACHE_HEADERS = {
    'Cache-Control': 'no-store, no-cache, must-revalidate, proxy-revalidate',
    'Pragma': 'no-cache',
    'Expires': '0',
}


def _plain(message, status):
    return Response(message, status=status, mimetype='text/plain')


@evaluate_bp.route('/evaluate', methods=['POST'])
@evaluate_bp.route('/api/evaluate', methods=['POST'])
def evaluate():
    """Grade an uploaded exam sheet and stream back the evaluation form."""
    try:
        upload = request.files.get('file')
        if upload is None:
            return _plain('Dosya gerekli.', 400)

        exam_code = request.form.get('examCode', '')
        if not config.openai_api_key:
            return _plain('OPENAI_API_KEY .env dosyasında tanımlı olmalı.', 500)

        subject, criteria = parse_rubric(request.form.get('criteriaJson'), config.default_subject)

        raw = scoring_service.score_exam_sheet(
            upload.read(), upload.mimetype or 'image/png', subject, exam_code, criteria
        )
        outcome = parse_grading_response(raw)
        if outcome.malformed:
            logger.warning("Rendering an empty evaluation: AI response was not usable JSON")
        result = outcome.result

        body = assemble_docx(result, subject, exam_code, font_path=font_resolver.resolve_unicode_font())

        filename = attachment_filename(result.student.name or '')
        response = Response(body, status=200, mimetype=DOCX_MIMETYPE)
        response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
        response.headers.update(NO_CACHE_HEADERS)
        logger.info("Responding with DOCX %s (%d items, score %d)",
                    filename, len(result.items), result.final_score_100)
        return response

    except Exception as e:
        logger.exception("Evaluation failed")
        return _plain(f'Sunucu hatası: {e}', 500)
