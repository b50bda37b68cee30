# src/query_service/api/search.py

from concurrent.futures import CancelledError, TimeoutError as FutureTimeoutError

from flask import Blueprint, request, jsonify

SEARCH_TIMEOUT_SECONDS = 10


def _page_response(session_id, generation, results, total, has_more):
    return {
        "session_id": session_id,
        "generation": generation,
        "total": total,
        "has_more": has_more,
        "results": [r.to_dict() for r in results],
    }


def create_search_blueprint(state, registry):
    """
    Factory that creates the type-ahead search blueprint.

    Each client passes the same session id with every keystroke. A newer
    search in a session supersedes the older one: the older request gets
    409 instead of stale results.

    Endpoints:
        GET /api/search
        GET /api/search/<session_id>/more
    """
    bp = Blueprint("search", __name__, url_prefix="/api")

    @bp.before_request
    def refresh_state():
        state.reload_if_changed()

    @bp.route("/search", methods=["GET"])
    def search():
        """
        Start a search in a session and return its first page.

        Query Parameters:
            session (str, optional): session id; a new session is created if omitted
            borough (str, optional): exact borough name, all boroughs if omitted
            q (str, optional): matched against name, address and cuisine

        Returns:
            JSON response:
            {
                "session_id": str,
                "generation": int,
                "total": int,
                "has_more": bool,
                "results": [ ... ]
            }
            409 if a newer search in the same session replaced this one.
        """
        session_id, session = registry.get_or_create(request.args.get("session") or None)
        generation, future = session.start(
            request.args.get("borough") or None,
            request.args.get("q", ""),
        )

        def superseded():
            return jsonify({"error": "Search was replaced by a newer one", "session_id": session_id}), 409

        try:
            applied = future.result(timeout=SEARCH_TIMEOUT_SECONDS)
        except CancelledError:
            return superseded()
        except FutureTimeoutError:
            return jsonify({"error": "Search timed out", "session_id": session_id}), 503

        current, results, total, has_more = session.current_page()
        if not applied or current != generation:
            return superseded()
        return jsonify(_page_response(session_id, generation, results, total, has_more)), 200

    @bp.route("/search/<session_id>/more", methods=["GET"])
    def search_more(session_id):
        """Next page of the session's latest search."""
        session = registry.get(session_id)
        if session is None:
            return jsonify({"error": f"Search session {session_id} not found"}), 404

        page = session.load_more()
        generation, _, total, has_more = session.current_page()
        return jsonify(_page_response(session_id, generation, page, total, has_more)), 200

    return bp
