"""
Glossary (terminology) and codex routes
"""
from flask import Blueprint, request, jsonify


def create_glossary_blueprint(runtime):
    """Create and configure the glossary blueprint"""
    bp = Blueprint('glossary', __name__)

    @bp.route('/api/terms', methods=['GET'])
    def list_terms():
        return jsonify({"terms": [t.to_dict() for t in runtime.terms.terms]})

    @bp.route('/api/terms', methods=['POST'])
    def add_terms():
        """Add one term ({original, translation}) or import a list ({terms, merge})"""
        data = request.get_json(silent=True) or {}

        if 'terms' in data:
            if not isinstance(data['terms'], list):
                return jsonify({"error": "Field 'terms' must be a list"}), 400
            total = runtime.terms.import_terms(
                [t for t in data['terms'] if isinstance(t, dict)],
                merge=bool(data.get('merge', True))
            )
            return jsonify({"total": total})

        try:
            term = runtime.terms.add_term(data.get('original', ''), data.get('translation', ''))
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"term": term.to_dict()}), 201

    @bp.route('/api/terms/<term_id>', methods=['DELETE'])
    def delete_term(term_id):
        if not runtime.terms.remove_term(term_id):
            return jsonify({"error": "Term not found"}), 404
        return jsonify({"deleted": term_id})

    @bp.route('/api/codex', methods=['GET'])
    def get_codex():
        return jsonify({
            "books": [b.to_dict() for b in runtime.codex.books],
            "active_book_id": runtime.codex.active_book_id
        })

    @bp.route('/api/codex/books', methods=['POST'])
    def create_book():
        data = request.get_json(silent=True) or {}
        book = runtime.codex.create_book(str(data.get('name', '')))
        return jsonify({"book": book.to_dict()}), 201

    @bp.route('/api/codex/books/<book_id>', methods=['DELETE'])
    def delete_book(book_id):
        if not runtime.codex.delete_book(book_id):
            return jsonify({"error": "Book not found or it is the last remaining book"}), 400
        return jsonify({"deleted": book_id})

    @bp.route('/api/codex/entries', methods=['POST'])
    def upsert_entry():
        data = request.get_json(silent=True) or {}
        entry = runtime.codex.upsert_entry(
            str(data.get('category', 'other')),
            str(data.get('name', '')),
            str(data.get('translation', '')),
            str(data.get('description', ''))
        )
        if entry is None:
            return jsonify({"error": "Missing field: name"}), 400
        return jsonify({"entry": entry.to_dict()})

    @bp.route('/api/codex/entries/<entry_id>', methods=['DELETE'])
    def delete_entry(entry_id):
        if not runtime.codex.remove_entry(entry_id):
            return jsonify({"error": "Entry not found"}), 404
        return jsonify({"deleted": entry_id})

    return bp
