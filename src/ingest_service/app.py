"""
app.py: Flask application for the write side (ingest service).

Endpoints:
- POST /refresh : download the whole dataset and replace the local store
- GET  /status  : last sync time, progress and last error
- POST /clear   : remove all restaurant data
- GET  /health  : basic health check

Run with: python -m ingest_service.app (starts on port 5000).
On start-up it seeds the store from the bundled snapshot on first run,
refreshes in the background if the data is stale and arms the background
refresher. It is the only service that writes to the store.
"""

import logging
import os
import threading

from flask import Flask, jsonify

from ingest_service import config
from ingest_service.db.session import engine, SessionLocal
from ingest_service.errors import ABCEatsError, FetchError, RefreshInProgressError, StorageError
from ingest_service.pipeline import RefreshService
from ingest_service.scheduler import BackgroundRefresher
from ingest_service.store.restaurant_store import RestaurantStore


def create_app(refresh_service):
    """Build the write service app around a RefreshService."""
    app = Flask(__name__)
    app.logger.setLevel(config.LOG_LEVEL)

    @app.route('/refresh', methods=['POST'], strict_slashes=False)
    def refresh():
        """Run a full refresh and report how many restaurants were stored."""
        try:
            result = refresh_service.refresh()
        except RefreshInProgressError:
            return jsonify({"error": "A refresh is already in progress."}), 409
        except FetchError as e:
            app.logger.error(f"Refresh failed: {e}")
            return jsonify({"error": e.user_message}), 502
        except StorageError as e:
            app.logger.error(f"Refresh failed: {e}")
            return jsonify({"error": "Could not save restaurant data."}), 500

        return jsonify({"status": "ok", "result": result.to_dict()}), 202

    @app.route('/status', methods=['GET'])
    def status():
        """Sync status for a banner or settings screen."""
        return jsonify(refresh_service.status()), 200

    @app.route('/clear', methods=['POST'])
    def clear():
        """Remove every stored restaurant and the last sync time."""
        if refresh_service.is_loading or refresh_service.store.is_refreshing():
            return jsonify({"error": "A refresh is already in progress."}), 409
        refresh_service.store.clear()
        return jsonify({"status": "cleared"}), 200

    @app.route('/health')
    def health():
        """Endpoint for checking health of this app (if basic endpoint works or not)."""
        app.logger.info("Health is okay.")
        return {'status': 'ok'}

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    return app


store = RestaurantStore(SessionLocal, engine)
refresh_service = RefreshService(store)
app = create_app(refresh_service)


def refresh_if_stale(refresh_service):
    """Bring stale data up to date without blocking start-up."""
    try:
        refresh_service.refresh_if_stale()
    except ABCEatsError as e:
        logging.error(f"Start-up refresh failed: {e}")


if __name__ == '__main__':
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
    logging.info("The write service Python app has started.")

    # This service is the only writer; the read service just reloads from the store
    store.bootstrap_from_snapshot(config.SNAPSHOT_PATH)
    threading.Thread(target=refresh_if_stale, args=(refresh_service,), daemon=True).start()
    BackgroundRefresher(refresh_service).schedule()

    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host='0.0.0.0', port=5000, debug=debug_mode, use_reloader=False)
