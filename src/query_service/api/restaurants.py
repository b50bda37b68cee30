# src/query_service/api/restaurants.py

from flask import Blueprint, request, jsonify

from query_service.processors.restaurant_query import (
    AVAILABLE_GRADES,
    available_boroughs,
    available_cuisines,
    filter_restaurants,
    nearby_with_distance,
    query,
)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200
DEFAULT_RADIUS_MILES = 1.0
DEFAULT_NEARBY_LIMIT = 100


def _int_arg(name, default):
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def _optional_int_arg(name):
    value = request.args.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


def create_restaurants_blueprint(state):
    """
    Factory that creates the restaurants blueprint with access to the
    application state holding the loaded restaurants.

    Endpoints:
        GET /api/restaurants
        GET /api/restaurants/<id>
        GET /api/restaurants/nearby
        GET /api/boroughs
        GET /api/cuisines
        GET /api/grades
    """
    bp = Blueprint("restaurants", __name__, url_prefix="/api")

    @bp.before_request
    def refresh_state():
        state.reload_if_changed()

    @bp.route("/restaurants", methods=["GET"])
    def get_restaurants():
        """
        Get a page of restaurants.

        Query Parameters:
            borough (str, optional): exact borough name, all boroughs if omitted
            q (str, optional): matched against name, address and cuisine
            page (int, optional): 1-based page number. Default = 1.
            page_size (int, optional): Page size. Default = 50, max = 200.
            grade, cuisine, min_score, max_score (optional): extra filters

        Returns:
            JSON response:
            {
                "page": int,
                "page_size": int,
                "total": int,
                "has_more": bool,
                "results": [ ... ]
            }
        """
        # --- pagination params ---
        page = _int_arg("page", 1)
        page_size = _int_arg("page_size", DEFAULT_PAGE_SIZE)

        if page < 1:
            page = 1
        if page_size < 1:
            page_size = 1
        if page_size > MAX_PAGE_SIZE:
            page_size = MAX_PAGE_SIZE

        result = query(
            state.snapshot(),
            borough=request.args.get("borough") or None,
            search_text=request.args.get("q", ""),
            offset=(page - 1) * page_size,
            limit=page_size,
            grade=request.args.get("grade") or None,
            cuisine=request.args.get("cuisine") or None,
            min_score=_optional_int_arg("min_score"),
            max_score=_optional_int_arg("max_score"),
        )

        return jsonify({
            "page": page,
            "page_size": page_size,
            "total": result.total,
            "has_more": result.has_more,
            "results": [r.to_dict() for r in result.results],
        }), 200

    @bp.route("/restaurants/<restaurant_id>", methods=["GET"])
    def get_restaurant(restaurant_id):
        """A single restaurant with its full violation history."""
        restaurant = state.get(restaurant_id)
        if restaurant is None:
            return jsonify({"error": f"Restaurant {restaurant_id} not found"}), 404

        data = restaurant.to_dict()
        data["display_address"] = restaurant.display_address
        return jsonify(data), 200

    @bp.route("/restaurants/nearby", methods=["GET"])
    def get_nearby_restaurants():
        """
        Restaurants within a radius (miles) of lat/lon, closest first.
        Each result carries a distance_miles field.
        """
        try:
            lat = float(request.args["lat"])
            lon = float(request.args["lon"])
            radius = float(request.args.get("radius", DEFAULT_RADIUS_MILES))
        except (KeyError, ValueError):
            return jsonify({"error": "lat and lon are required numbers; radius must be a number"}), 400

        if not (-90 <= lat <= 90 and -180 <= lon <= 180) or radius < 0:
            return jsonify({"error": "lat/lon out of range or negative radius"}), 400

        limit = _int_arg("limit", DEFAULT_NEARBY_LIMIT)
        if limit < 1:
            limit = 1

        results = []
        for restaurant, distance in nearby_with_distance(state.snapshot(), (lat, lon), radius, limit):
            data = restaurant.to_dict()
            data["distance_miles"] = round(distance, 3)
            results.append(data)
        return jsonify(results), 200

    @bp.route("/boroughs", methods=["GET"])
    def get_boroughs():
        return jsonify(available_boroughs(state.snapshot())), 200

    @bp.route("/cuisines", methods=["GET"])
    def get_cuisines():
        borough = request.args.get("borough") or None
        return jsonify(available_cuisines(filter_restaurants(state.snapshot(), borough))), 200

    @bp.route("/grades", methods=["GET"])
    def get_grades():
        return jsonify(AVAILABLE_GRADES), 200

    return bp
