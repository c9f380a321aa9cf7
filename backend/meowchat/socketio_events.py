from functools import wraps

from flask import current_app, request
from flask_socketio import emit

from meowchat import socketio
from meowchat.services.chat import ProtocolError


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _service():
    return current_app.extensions['chat_service']


def _reports_errors(handler):
    """Turn ProtocolError into an ``error`` event for the calling socket."""
    @wraps(handler)
    def wrapper(*args, **kwargs):
        try:
            return handler(*args, **kwargs)
        except ProtocolError as exc:
            current_app.logger.info(f"[protocol-error] sid={_get_sid()} event={handler.__name__}: {exc}")
            emit('error', {'message': str(exc)})
    return wrapper


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ProtocolError('Payload must be an object')
    return data


def handle_connect(auth=None):
    emit('connected', {'message': 'Connected'})


def handle_disconnect(reason=None):
    _service().disconnect(_get_sid())


@_reports_errors
def handle_join_queue(data=None):
    role = _payload(data).get('role')
    if not role:
        raise ProtocolError('role is required')
    _service().join_queue(_get_sid(), role)


@_reports_errors
def handle_send_message(data=None):
    text = _payload(data).get('text')
    if not isinstance(text, str) or not text.strip():
        raise ProtocolError('text is required')
    _service().send_message(_get_sid(), text)


@_reports_errors
def handle_typing(data=None):
    is_typing = _payload(data).get('isTyping')
    if not isinstance(is_typing, bool):
        raise ProtocolError('isTyping must be a boolean')
    _service().typing(_get_sid(), is_typing)


@_reports_errors
def handle_end_chat(data=None):
    _payload(data)
    _service().end_chat(_get_sid())


@_reports_errors
def handle_submit_guess(data=None):
    guess = _payload(data).get('guess')
    if not guess:
        raise ProtocolError('guess is required')
    result = _service().submit_guess(_get_sid(), guess)
    emit('reveal_answer', result)


def register_socketio_handlers(namespace: str = '/') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    socketio.on_event('join_queue', handle_join_queue, namespace=namespace)
    socketio.on_event('send_message', handle_send_message, namespace=namespace)
    socketio.on_event('typing', handle_typing, namespace=namespace)
    socketio.on_event('end_chat', handle_end_chat, namespace=namespace)
    socketio.on_event('submit_guess', handle_submit_guess, namespace=namespace)
