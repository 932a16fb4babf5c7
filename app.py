import logging
import secrets
from datetime import datetime, timedelta, timezone

from flask import Flask, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Config
from models import Failure, RecipeCatalog, UserDirectory, demo_recipes, demo_users
from utils import ApiResponse, CredentialStore, TokenService, token_required


def create_app(config=None, user_directory=None, recipe_catalog=None):
    """Build the Flask application.

    ``config`` is a mapping applied on top of :class:`Config`. When no
    managers are passed, fresh in-memory ones are built from the config and
    seeded with demo data if ``SEED_DEMO_DATA`` is set.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    if config:
        app.config.update(config)

    app.logger.setLevel(app.config["LOG_LEVEL"])

    if not app.config.get("JWT_SECRET_KEY"):
        app.logger.warning("JWT_SECRET_KEY is not set; using a random secret for this process")
        app.config["JWT_SECRET_KEY"] = secrets.token_hex(32)

    CORS(app, resources={
        r"/*": {
            "origins": app.config["ALLOWED_ORIGINS"],
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"]
        }
    }, supports_credentials=True)

    seed = app.config["SEED_DEMO_DATA"]

    if user_directory is None:
        credentials = CredentialStore(iterations=app.config["PASSWORD_HASH_ITERATIONS"])
        tokens = TokenService(
            app.config["JWT_SECRET_KEY"],
            ttl=timedelta(hours=app.config["TOKEN_TTL_HOURS"]),
            algorithm=app.config["JWT_ALGORITHM"],
        )
        user_directory = UserDirectory(credentials, tokens, seed=demo_users(credentials) if seed else None)
    if recipe_catalog is None:
        recipe_catalog = RecipeCatalog(seed=demo_recipes() if seed else None)

    app.config["USER_DIRECTORY"] = user_directory
    app.config["RECIPE_CATALOG"] = recipe_catalog

    def json_body():
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else None

    @app.route("/")
    def index():
        return ApiResponse.success(
            data={
                "version": app.config["API_VERSION"],
                "endpoints": {"users": "/api/users", "recipes": "/api/recipes"},
            },
            message="Recipe Sharing API is running"
        )

    @app.route("/health")
    def health():
        return ApiResponse.success(
            data={"status": "OK", "timestamp": datetime.now(timezone.utc).isoformat()}
        )

    # Users

    @app.route("/api/users/register", methods=["POST"])
    def register():
        data = json_body()
        if data is None:
            return ApiResponse.error("Request body must be a JSON object")

        result = user_directory.register(data.get('username'), data.get('email'), data.get('password'))
        if isinstance(result, Failure):
            return ApiResponse.failure(result)

        return ApiResponse.success(
            data={"user": result.to_dict()},
            message="User registered successfully",
            status_code=201
        )

    @app.route("/api/users/login", methods=["POST"])
    def login():
        data = json_body()
        if data is None:
            return ApiResponse.error("Request body must be a JSON object")

        result = user_directory.login(data.get('username'), data.get('password'))
        if isinstance(result, Failure):
            return ApiResponse.failure(result)

        return ApiResponse.success(
            data={"token": result.token, "user": result.user.to_dict()},
            message="Login successful"
        )

    @app.route("/api/users/profile/<int:user_id>", methods=["GET"])
    @token_required
    def get_profile(user_id, current_user_id):
        if user_id != current_user_id:
            return ApiResponse.error("Unauthorized to view this profile", status_code=403)

        user = user_directory.get_profile(user_id)
        if user is None:
            return ApiResponse.error("User not found", status_code=404)

        return ApiResponse.success(data={"user": user.to_dict()})

    @app.route("/api/users/profile/<int:user_id>", methods=["PUT"])
    @token_required
    def update_profile(user_id, current_user_id):
        if user_id != current_user_id:
            return ApiResponse.error("Unauthorized to update this profile", status_code=403)

        data = json_body()
        if data is None:
            return ApiResponse.error("Request body must be a JSON object")

        result = user_directory.update_profile(user_id, data)
        if isinstance(result, Failure):
            return ApiResponse.failure(result)

        return ApiResponse.success(data={"user": result.to_dict()}, message="Profile updated successfully")

    @app.route("/api/users", methods=["GET"])
    @token_required
    def list_users(current_user_id):
        users = [u.to_dict() for u in user_directory.list()]
        return ApiResponse.success(data={"count": len(users), "users": users})

    # Recipes

    @app.route("/api/recipes", methods=["GET"])
    def list_recipes():
        recipes = [r.to_dict() for r in recipe_catalog.get_all()]
        return ApiResponse.success(data={"count": len(recipes), "recipes": recipes})

    @app.route("/api/recipes/search", methods=["GET"])
    def search_recipes():
        query = request.args.get("q", "").strip()
        if not query:
            return ApiResponse.error("Search query is required")

        results = [r.to_dict() for r in recipe_catalog.search(query)]
        return ApiResponse.success(data={"count": len(results), "results": results})

    @app.route("/api/recipes/<int:recipe_id>", methods=["GET"])
    def get_recipe(recipe_id):
        recipe = recipe_catalog.get_by_id(recipe_id)
        if recipe is None:
            return ApiResponse.error("Recipe not found", status_code=404)

        return ApiResponse.success(data={"recipe": recipe.to_dict()})

    @app.route("/api/recipes/user/<int:user_id>", methods=["GET"])
    def recipes_by_user(user_id):
        recipes = [r.to_dict() for r in recipe_catalog.get_by_user_id(user_id)]
        return ApiResponse.success(data={"count": len(recipes), "recipes": recipes})

    @app.route("/api/recipes", methods=["POST"])
    @token_required
    def create_recipe(current_user_id):
        data = json_body()
        if data is None:
            return ApiResponse.error("Request body must be a JSON object")

        result = recipe_catalog.create(data, current_user_id)
        if isinstance(result, Failure):
            return ApiResponse.failure(result)

        return ApiResponse.success(
            data={"recipe": result.to_dict()},
            message="Recipe created successfully",
            status_code=201
        )

    @app.route("/api/recipes/<int:recipe_id>", methods=["PUT"])
    @token_required
    def update_recipe(recipe_id, current_user_id):
        data = json_body()
        if data is None:
            return ApiResponse.error("Request body must be a JSON object")

        result = recipe_catalog.update(recipe_id, data, current_user_id)
        if isinstance(result, Failure):
            return ApiResponse.failure(result)

        return ApiResponse.success(data={"recipe": result.to_dict()}, message="Recipe updated successfully")

    @app.route("/api/recipes/<int:recipe_id>", methods=["DELETE"])
    @token_required
    def delete_recipe(recipe_id, current_user_id):
        failure = recipe_catalog.delete(recipe_id, current_user_id)
        if failure is not None:
            return ApiResponse.failure(failure)

        return ApiResponse.success(message="Recipe deleted successfully")

    @app.errorhandler(404)
    def not_found(e):
        return ApiResponse.error(
            "Endpoint not found",
            errors={"path": request.path, "method": request.method},
            status_code=404
        )

    @app.errorhandler(405)
    def method_not_allowed(e):
        return ApiResponse.error("Method not allowed", status_code=405)

    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException):
            return ApiResponse.error(e.description, status_code=e.code)

        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        return ApiResponse.error(
            "Internal server error",
            errors=str(e) if app.debug else None,
            status_code=500
        )

    return app


if __name__ == '__main__':
    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    app = create_app()
    app.run(host="localhost", port=5000, debug=True)
