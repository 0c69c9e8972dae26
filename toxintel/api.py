"""
Flask API for Toxic Intelligence
JSON endpoints for conversations, message import and summaries
"""

import sqlite3
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Tuple

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from . import config
from .analysis_client import build_default_client
from .pipeline import EmptyImportError, ImportPipeline
from .storage import ConversationNotFound, MessageStore

# Configure logging
logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def error_response(message: str, status: int):
    return jsonify({"error": message}), status


def parse_pagination(args) -> Tuple[int, int]:
    """Read limit/offset query parameters; invalid values fall back to defaults."""
    limit = config.MESSAGES_DEFAULT_LIMIT
    offset = 0

    try:
        parsed_limit = int(args.get("limit", ""))
        if parsed_limit > 0:
            limit = min(parsed_limit, config.MESSAGES_MAX_LIMIT)
    except ValueError:
        pass

    try:
        parsed_offset = int(args.get("offset", ""))
        if parsed_offset >= 0:
            offset = parsed_offset
    except ValueError:
        pass

    return limit, offset


def create_app(
    store: Optional[MessageStore] = None,
    analyzer: Any = None,
    pipeline: Optional[ImportPipeline] = None,
) -> Flask:
    """
    Build the Flask app.

    Args:
        store: Storage collaborator (default MessageStore at config.DB_PATH)
        analyzer: Analysis capability (default built from config)
        pipeline: Fully built pipeline; overrides store and analyzer
    """
    if pipeline is None:
        store = store or MessageStore()
        if analyzer is None:
            analyzer = build_default_client()
        pipeline = ImportPipeline(store, analyzer=analyzer)

    app = Flask(__name__)
    app.config['MAX_CONTENT_LENGTH'] = 16 * 1024 * 1024  # 16MB max body
    app.config['PIPELINE'] = pipeline

    @app.errorhandler(Exception)
    def handle_error(e):
        """Return every error as JSON, including unexpected ones."""
        if isinstance(e, HTTPException):
            return error_response(e.description, e.code)
        logger.error(f"Unhandled error on {request.path}: {e}", exc_info=True)
        return error_response("Internal server error", 500)

    @app.route('/api/conversations', methods=['GET'])
    def list_conversations():
        """List all conversations, newest first."""
        try:
            conversations = pipeline.store.list_conversations()
        except sqlite3.Error as e:
            logger.error(f"Error fetching conversations: {e}", exc_info=True)
            return error_response("Failed to fetch conversations", 500)
        return jsonify([c.to_dict() for c in conversations])

    @app.route('/api/conversations', methods=['POST'])
    def create_conversation():
        """Create a new conversation."""
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return error_response("Invalid JSON body", 400)

        title = body.get('title')
        if not title or not isinstance(title, str):
            return error_response("title is required and must be a string", 400)

        description = body.get('description')
        if description is not None and not isinstance(description, str):
            return error_response("description must be a string", 400)

        try:
            conversation = pipeline.store.create_conversation(title, description)
        except sqlite3.Error as e:
            logger.error(f"Error creating conversation: {e}", exc_info=True)
            return error_response("Failed to create conversation", 500)
        return jsonify(conversation.to_dict()), 201

    @app.route('/api/conversations/<conversation_id>/messages', methods=['GET'])
    def list_messages(conversation_id: str):
        """List messages of a conversation with limit/offset pagination."""
        if pipeline.store.get_conversation(conversation_id) is None:
            return error_response("Conversation not found", 404)

        limit, offset = parse_pagination(request.args)
        try:
            messages = pipeline.store.list_messages(conversation_id, limit=limit, offset=offset)
        except sqlite3.Error as e:
            logger.error(f"Error fetching messages: {e}", exc_info=True)
            return error_response("Failed to fetch messages", 500)
        return jsonify([m.to_dict() for m in messages])

    @app.route('/api/conversations/<conversation_id>/messages', methods=['POST'])
    def import_messages(conversation_id: str):
        """Import raw chat text, analyze it and refresh the summary."""
        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            return error_response("Invalid JSON body", 400)

        raw = body.get('raw')
        if not raw or not isinstance(raw, str):
            return error_response("raw field is required and must be a string", 400)

        try:
            imported = pipeline.import_raw(conversation_id, raw)
        except EmptyImportError as e:
            return error_response(str(e), 400)
        except ConversationNotFound:
            return error_response("Conversation not found", 404)
        except sqlite3.Error as e:
            logger.error(f"Error inserting messages: {e}", exc_info=True)
            return error_response("Failed to insert messages", 500)

        return jsonify({"imported": imported}), 201

    @app.route('/api/conversations/<conversation_id>/summary', methods=['GET'])
    def get_summary(conversation_id: str):
        """Get the conversation summary (all zeros until first import)."""
        if pipeline.store.get_conversation(conversation_id) is None:
            return error_response("Conversation not found", 404)

        try:
            summary = pipeline.get_summary(conversation_id)
        except sqlite3.Error as e:
            logger.error(f"Error fetching summary: {e}", exc_info=True)
            return error_response("Failed to fetch summary", 500)
        return jsonify(summary.to_dict())

    @app.route('/health')
    def health():
        """Health check endpoint for monitoring."""
        status = {
            'status': 'ok',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'analysis_enabled': pipeline.analyzer is not None,
            'components': {},
        }

        db_status = {'status': 'down'}
        try:
            pipeline.store.ping()
            db_status = {'status': 'up'}
        except sqlite3.Error as e:
            db_status['error'] = str(e)
        status['components']['db'] = db_status

        if db_status['status'] == 'down':
            status['status'] = 'degraded'
            return jsonify(status), 503

        return jsonify(status)

    return app


if __name__ == '__main__':
    # Validate config
    valid, msg = config.validate_config()
    if not valid:
        logger.warning(f"Config validation: {msg}")

    logger.info(f"Starting server (debug=True, use_reloader={config.DEV_USE_RELOADER})")
    create_app().run(debug=True, use_reloader=config.DEV_USE_RELOADER, host='0.0.0.0', port=5000)
