"""
WebSocket handlers for real-time communication
"""
from flask import request
from flask_socketio import emit

from src.core.queue.events import Event, EventType
from src.utils.unified_logger import get_logger


def configure_websocket_handlers(socketio, runtime):
    """Configure WebSocket event handlers"""

    @socketio.on('connect')
    def handle_websocket_connect():
        get_logger().debug(f'WebSocket client connected: {request.sid}')
        emit('connected', {
            'message': 'Connected to translation server via WebSocket',
            'status': runtime.scheduler.status(),
        })

    @socketio.on('disconnect')
    def handle_websocket_disconnect():
        get_logger().debug(f'WebSocket client disconnected: {request.sid}')


def emit_update(socketio, event_name, data):
    """
    Emit a WebSocket event to every client

    Args:
        socketio: SocketIO instance (None disables emission)
        event_name (str): notification, progress or chapter_update
        data (dict): JSON-serializable payload
    """
    if socketio is None:
        return
    try:
        socketio.emit(event_name, data, namespace='/')
    except Exception as e:
        get_logger().warning(f"WebSocket emission error for {event_name}: {e}")


def event_to_payload(event: Event, chapter_store):
    """
    Translate a queue event into (socket event name, payload).

    Returns None for events the browser does not need.
    """
    data = event.data
    if event.type == EventType.PROGRESS:
        return 'progress', dict(data)

    if event.type == EventType.OUTPUT_DELTA:
        return 'chapter_update', {'unit_id': data['unit_id'], 'delta': data['delta']}

    if event.type in (EventType.JOB_COMPLETED, EventType.JOB_FAILED):
        result = data['result']
        return 'chapter_update', {
            'unit_id': result.unit_id,
            'chapter': chapter_store.snapshot(result.unit_id),
            'result': result.to_dict(),
        }

    if event.type in (EventType.JOB_STARTED, EventType.OUTPUT_RESET):
        return 'chapter_update', {'unit_id': data['unit_id'],
                                  'chapter': chapter_store.snapshot(data['unit_id'])}

    if event.type in (EventType.UNITS_QUEUED, EventType.UNITS_REVERTED):
        return 'chapter_update', {
            'unit_ids': data['unit_ids'],
            'chapters': [chapter_store.snapshot(uid) for uid in data['unit_ids']],
        }

    if event.type == EventType.RUN_FINISHED:
        return 'progress', {'percentage': 100, 'eta_ms': 0, 'finished': True, **data}

    return None
