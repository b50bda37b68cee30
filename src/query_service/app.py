"""
app.py: Main Flask application for the Query Side (Read Service) of ABC Eats.

This service answers read-only questions about NYC restaurant inspections:
- Paged browse and search by borough, name, address or cuisine.
- Proximity search around a latitude/longitude.
- Type-ahead search sessions where a newer query replaces an older one.
- Open API (Swagger) documentation at /swagger.

Restaurants are served from an in-memory AppState loaded from the local
store that the ingest service writes. When the ingest side finishes a
refresh, the next request reloads the state.

Run with: python -m query_service.app (starts on port 5001).
This service never writes to the store; run the ingest service alongside
it to seed and refresh the data.
"""

import logging
import os

from flask import Flask, jsonify
from flask_cors import CORS
from flask_swagger_ui import get_swaggerui_blueprint

from ingest_service import config
from ingest_service.db.session import engine, SessionLocal
from ingest_service.errors import StorageError
from ingest_service.store.restaurant_store import RestaurantStore
from query_service.api.restaurants import create_restaurants_blueprint
from query_service.api.search import create_search_blueprint
from query_service.search_session import SearchSessionRegistry
from query_service.state import AppState

# Swagger UI configuration
SWAGGER_URL = '/swagger'  # URL for Swagger UI (e.g., http://localhost:5001/swagger)
API_URL = '/swagger.json'

SWAGGER_CONFIG = {
    'app_name': "ABC Eats - Read Service",
    'deepLinking': True,
    'defaultModelsExpandDepth': -1,
}

RESTAURANT_EXAMPLE = {
    "id": "41234567",
    "name": "JOE'S PIZZA",
    "grade": "A",
    "food_type": "Pizza",
    "address": "7 CARMINE STREET",
    "borough": "Manhattan",
    "zip_code": "10014",
    "latitude": 40.7305,
    "longitude": -74.0021,
    "last_updated": "2025-07-12T04:00:00",
    "phone": "2123661182",
    "cuisine": "Pizza",
    "inspection_date": "2024-06-01T00:00:00",
    "score": 9,
    "violations": [
        {
            "id": "04L2024-01-01T00:00:00.000",
            "code": "04L",
            "description": "Evidence of mice or live mice present in facility's food and/or non-food areas.",
            "critical_flag": "Critical",
            "inspection_date": "2024-01-01T00:00:00"
        }
    ]
}

SWAGGER_SPEC = {
    "openapi": "3.0.0",
    "info": {"title": "ABC Eats Read Service", "version": "1.0.0"},
    "paths": {
        "/health": {
            "get": {
                "summary": "Health check",
                "responses": {"200": {"description": "OK"}}
            }
        },
        "/api/restaurants": {
            "get": {
                "summary": "Browse and search restaurants",
                "tags": ["Restaurants"],
                "description": "Restaurants sorted by name. With q, exact name matches come first. Data is from NYC Open Data (DOHMH Restaurant Inspection Results).",
                "parameters": [
                    {"name": "borough", "in": "query", "schema": {"type": "string"}},
                    {"name": "q", "in": "query", "schema": {"type": "string"}},
                    {"name": "page", "in": "query", "schema": {"type": "integer", "default": 1}},
                    {"name": "page_size", "in": "query", "schema": {"type": "integer", "default": 50, "maximum": 200}},
                    {"name": "grade", "in": "query", "schema": {"type": "string", "enum": ["A", "B", "C", "N/A"]}},
                    {"name": "cuisine", "in": "query", "schema": {"type": "string"}},
                    {"name": "min_score", "in": "query", "schema": {"type": "integer"}},
                    {"name": "max_score", "in": "query", "schema": {"type": "integer"}}
                ],
                "responses": {
                    "200": {
                        "description": "One page of restaurants",
                        "content": {
                            "application/json": {
                                "example": {
                                    "page": 1,
                                    "page_size": 50,
                                    "total": 1,
                                    "has_more": False,
                                    "results": [RESTAURANT_EXAMPLE]
                                }
                            }
                        }
                    }
                }
            }
        },
        "/api/restaurants/{restaurant_id}": {
            "get": {
                "summary": "Get one restaurant with its violation history",
                "tags": ["Restaurants"],
                "parameters": [{"name": "restaurant_id", "in": "path", "required": True, "schema": {"type": "string"}}],
                "responses": {
                    "200": {"description": "The restaurant", "content": {"application/json": {"example": RESTAURANT_EXAMPLE}}},
                    "404": {"description": "Unknown restaurant id"}
                }
            }
        },
        "/api/restaurants/nearby": {
            "get": {
                "summary": "Restaurants near a location",
                "tags": ["Restaurants"],
                "description": "Restaurants within radius miles of lat/lon, closest first.",
                "parameters": [
                    {"name": "lat", "in": "query", "required": True, "schema": {"type": "number"}},
                    {"name": "lon", "in": "query", "required": True, "schema": {"type": "number"}},
                    {"name": "radius", "in": "query", "schema": {"type": "number", "default": 1.0}},
                    {"name": "limit", "in": "query", "schema": {"type": "integer", "default": 100}}
                ],
                "responses": {
                    "200": {"description": "Restaurants with a distance_miles field"},
                    "400": {"description": "Missing or invalid coordinates"}
                }
            }
        },
        "/api/search": {
            "get": {
                "summary": "Type-ahead search in a session",
                "tags": ["Search"],
                "description": "Starts a search in the given session (a new one if omitted) and returns its first page. If a newer search in the same session replaces this one, the response is 409.",
                "parameters": [
                    {"name": "session", "in": "query", "schema": {"type": "string"}},
                    {"name": "borough", "in": "query", "schema": {"type": "string"}},
                    {"name": "q", "in": "query", "schema": {"type": "string"}}
                ],
                "responses": {
                    "200": {"description": "session_id, generation, total, has_more and the first page of results"},
                    "409": {"description": "Replaced by a newer search in the same session"}
                }
            }
        },
        "/api/search/{session_id}/more": {
            "get": {
                "summary": "Next page of a session's latest search",
                "tags": ["Search"],
                "parameters": [{"name": "session_id", "in": "path", "required": True, "schema": {"type": "string"}}],
                "responses": {
                    "200": {"description": "The next page of results"},
                    "404": {"description": "Unknown search session"}
                }
            }
        },
        "/api/boroughs": {
            "get": {
                "summary": "Boroughs present in the data",
                "tags": ["Filters"],
                "responses": {"200": {"description": "Sorted borough names"}}
            }
        },
        "/api/cuisines": {
            "get": {
                "summary": "Cuisines present in the data",
                "tags": ["Filters"],
                "parameters": [{"name": "borough", "in": "query", "schema": {"type": "string"}}],
                "responses": {"200": {"description": "Sorted cuisine names"}}
            }
        },
        "/api/grades": {
            "get": {
                "summary": "Grades that can be filtered on",
                "tags": ["Filters"],
                "responses": {"200": {"description": "A, B, C and N/A"}}
            }
        }
    }
}


def create_app(state, search_registry=None):
    """Build the read service app around an AppState."""
    search_registry = search_registry or SearchSessionRegistry(state)

    app = Flask(__name__)

    # Use Flask CORS to allow connections from other sites
    CORS(app)

    app.logger.setLevel(config.LOG_LEVEL)

    swaggerui_blueprint = get_swaggerui_blueprint(
        SWAGGER_URL,
        API_URL,
        config=SWAGGER_CONFIG
    )
    app.register_blueprint(swaggerui_blueprint)
    app.register_blueprint(create_restaurants_blueprint(state))
    app.register_blueprint(create_search_blueprint(state, search_registry))

    @app.route('/health', methods=['GET'])
    def health():
        """
        Health check for the read service: verifies the local store can be read.
        Returns: {"status": "ok", "store": true, "restaurants": int}
        """
        try:
            restaurants = state.store.count()
            store_status = True
        except StorageError as e:
            app.logger.error(f"Store health check failed: {e}")
            restaurants = None
            store_status = False

        return jsonify({
            "status": "ok" if store_status else "error",
            "service": "read_service",
            "store": store_status,
            "restaurants": restaurants,
            "last_update_time": state.last_update_time.isoformat() if state.last_update_time else None
        })

    @app.route('/swagger.json', methods=['GET'])
    def swagger_spec():
        """Open API spec for read service endpoints."""
        return jsonify(SWAGGER_SPEC)

    @app.errorhandler(StorageError)
    def storage_error(error):
        app.logger.error(f"Store read failed: {error}")
        return jsonify({"error": "Restaurant data is unavailable"}), 503

    # Error handler for 404
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Endpoint not found"}), 404

    # Error handler for 500
    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({"error": "Internal server error"}), 500

    return app


store = RestaurantStore(SessionLocal, engine)
state = AppState(store)
app = create_app(state)


if __name__ == '__main__':
    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    # Read-only: the ingest service seeds and refreshes the store
    state.load()

    # Run the Flask app (debug mode = True for development only).
    debug_mode = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    app.run(host='0.0.0.0', port=5001, debug=debug_mode, use_reloader=False)
