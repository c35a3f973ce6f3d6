"""
Chapter and translation job routes
"""
from flask import Blueprint, request, jsonify

from src.config import TranslationOptions


def create_translation_blueprint(runtime):
    """
    Create and configure the translation blueprint

    Args:
        runtime: WorkbenchRuntime hosting the scheduler
    """
    bp = Blueprint('translation', __name__)

    @bp.route('/api/chapters', methods=['GET'])
    def list_chapters():
        return jsonify({"chapters": runtime.chapters.list_chapters()})

    @bp.route('/api/chapters', methods=['POST'])
    def add_chapters():
        """Add chapters from a JSON list of {title, content}"""
        data = request.get_json(silent=True) or {}
        items = data.get('chapters')
        if not isinstance(items, list) or not items:
            return jsonify({"error": "Field 'chapters' must be a non-empty list"}), 400
        if not all(isinstance(item, dict) for item in items):
            return jsonify({"error": "Each chapter must be an object with title and content"}), 400

        created = runtime.chapters.add_chapters(items)
        return jsonify({"chapters": [c.to_dict() for c in created]}), 201

    @bp.route('/api/chapters/<unit_id>', methods=['PATCH'])
    def edit_chapter(unit_id):
        """Manual edit of a chapter's translated text"""
        data = request.get_json(silent=True) or {}
        if 'output_text' not in data or not isinstance(data['output_text'], str):
            return jsonify({"error": "Missing field: output_text"}), 400
        try:
            snapshot = runtime.chapters.edit_output(unit_id, data['output_text'])
        except ValueError as e:
            return jsonify({"error": str(e)}), 409
        if snapshot is None:
            return jsonify({"error": "Chapter not found"}), 404
        return jsonify({"chapter": snapshot})

    @bp.route('/api/chapters/<unit_id>', methods=['DELETE'])
    def delete_chapter(unit_id):
        if runtime.chapters.get(unit_id) is None:
            return jsonify({"error": "Chapter not found"}), 404
        if not runtime.chapters.remove(unit_id):
            return jsonify({"error": "Chapter is being translated"}), 409
        return jsonify({"deleted": unit_id})

    @bp.route('/api/translate', methods=['POST'])
    def start_translation_request():
        """Queue every eligible chapter (or the given unit_ids)"""
        data = request.get_json(silent=True) or {}
        try:
            options = TranslationOptions.from_web_request(data)
        except (TypeError, ValueError) as e:
            return jsonify({"error": f"Invalid options: {e}"}), 400

        queued = runtime.start_translation(options, data.get('unit_ids'))
        return jsonify({
            "queued": queued,
            "message": "Translation queued." if queued else "Nothing was queued.",
            "options": options.to_dict(),
            "status": runtime.status()
        }), 202 if queued else 200

    @bp.route('/api/chapters/<unit_id>/retry', methods=['POST'])
    def retry_chapter(unit_id):
        data = request.get_json(silent=True) or {}
        try:
            options = TranslationOptions.from_web_request(data)
        except (TypeError, ValueError) as e:
            return jsonify({"error": f"Invalid options: {e}"}), 400

        queued = runtime.retry(unit_id, options)
        if queued is None:
            return jsonify({"error": "Chapter not found"}), 404
        return jsonify({"queued": queued, "status": runtime.status()}), 202 if queued else 200

    @bp.route('/api/translate/stop', methods=['POST'])
    def stop_translation():
        stopping = runtime.request_stop()
        return jsonify({"stopping": stopping, "status": runtime.status()})

    @bp.route('/api/translate/status', methods=['GET'])
    def translation_status():
        return jsonify(runtime.status())

    return bp
