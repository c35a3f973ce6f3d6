"""
Configuration, health check, key management and notification routes
"""
from flask import Blueprint, request, jsonify

from src.config import DEFAULT_MODEL, parse_key_list


def create_config_blueprint(runtime):
    """Create and configure the config blueprint"""
    bp = Blueprint('config', __name__)

    @bp.route('/api/health', methods=['GET'])
    def health_check():
        """API health check endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Translation API is running",
            "default_model": DEFAULT_MODEL,
            "is_processing": runtime.scheduler.is_processing
        })

    @bp.route('/api/models', methods=['GET'])
    def get_models():
        """Models with their daily caps, request rates and today's usage"""
        return jsonify({
            "models": runtime.model_overview(),
            "default": DEFAULT_MODEL,
            "usage_date": runtime.usage.snapshot()['date']
        })

    @bp.route('/api/keys', methods=['GET'])
    def get_key_status():
        """Key pool position per provider (never the keys themselves)"""
        return jsonify({"providers": runtime.key_status()})

    @bp.route('/api/keys/<provider>', methods=['PUT'])
    def update_keys(provider):
        data = request.get_json(silent=True) or {}
        raw_keys = data.get('keys', [])
        if isinstance(raw_keys, str):
            keys = parse_key_list(raw_keys)
        elif isinstance(raw_keys, list):
            keys = parse_key_list(','.join(str(k) for k in raw_keys))
        else:
            return jsonify({"error": "Field 'keys' must be a list or a string"}), 400

        try:
            info = runtime.update_keys(
                provider, keys,
                base_url=data.get('base_url'),
                model_name=data.get('model_name')
            )
        except KeyError:
            return jsonify({"error": f"Unknown provider: {provider}"}), 404
        return jsonify(info)

    @bp.route('/api/notifications', methods=['GET'])
    def get_notifications():
        since = request.args.get('since', 0, type=int)
        return jsonify({
            "notifications": [n.to_dict() for n in runtime.notifications.recent(since)]
        })

    return bp
