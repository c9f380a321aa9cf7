from flask import Blueprint, current_app, jsonify

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Meow · Human · AI chat server!'})


@main.route('/api/stats')
def stats():
    """Snapshot of the matchmaking engine: queue length, sessions and tracked users."""
    return jsonify(current_app.extensions['chat_service'].stats())
