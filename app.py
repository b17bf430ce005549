import os, sys, logging
from typing import Any, Mapping, Optional, Union
from flask import Flask, Response, jsonify, request
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

from models import db, Post
from storage import MAX_ID, PostStore, NotFound, StorageError
from auth import AuthError, KeyVerifier, StaticKeyVerifier, require_api_key

load_dotenv()

logger = logging.getLogger(__name__)
access_log = logging.getLogger('access')

MISSING_MESSAGE : str = 'This post does not exist.'
REMOVED_MESSAGE : str = 'The post has been removed.'

JSONResponse = Union[Response, tuple[Response, int]]


class ValidationError(Exception):
    '''The request body is missing a required field or has the wrong shape.'''


def _json_body() -> dict[str, Any]:
    body : Optional[Any] = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise ValidationError('request body must be a JSON object')
    return body


def _required_text(body: Mapping[str, Any], field: str) -> str:
    value : Optional[Any] = body.get(field)
    if not isinstance(value, str) or not value:
        raise ValidationError(f'{field} is required')
    return value


def _required_id(body: Mapping[str, Any]) -> int:
    value : Optional[Any] = body.get('id')
    # The id may arrive quoted; isdigit alone also accepts non-ASCII digits.
    if isinstance(value, str) and value.isascii() and value.isdigit():
        value = int(value)
    # bool is an int subclass.
    if isinstance(value, int) and not isinstance(value, bool) and 0 < value <= MAX_ID:
        return value
    raise ValidationError('id is required')


def load_config() -> dict[str, Any]:
    return {
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', 'sqlite:///data.db'),
        'API_KEY': os.getenv('API_KEY', 'API_KEY'),
        'HOST': os.getenv('HOST', '0.0.0.0'),
        'PORT': int(os.getenv('PORT', '8080')),
    }


def create_app(config: Optional[Mapping[str, Any]] = None,
               store: Optional[PostStore] = None,
               verifier: Optional[KeyVerifier] = None) -> Flask:
    app : Flask = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    db.init_app(app)

    posts : PostStore = store or PostStore(db)
    app.extensions['api_key_verifier'] = verifier or StaticKeyVerifier(app.config['API_KEY'])

    with app.app_context():
        posts.init_schema()

    @app.after_request
    def log_access(response: Response) -> Response:
        access_log.info('%s %s %s', request.method, request.full_path.rstrip('?'), response.status_code)
        return response

    @app.errorhandler(ValidationError)
    def bad_request(error: ValidationError) -> JSONResponse:
        return jsonify({'error': str(error)}), 400

    @app.errorhandler(AuthError)
    def unauthorized(error: AuthError) -> JSONResponse:
        return jsonify({'error': str(error)}), error.status

    @app.errorhandler(NotFound)
    def not_found(_error: NotFound) -> JSONResponse:
        return jsonify({'message': MISSING_MESSAGE}), 404

    @app.errorhandler(StorageError)
    def storage_failed(error: StorageError) -> JSONResponse:
        logger.error('storage failure on %s %s', request.method, request.path, exc_info=error)
        return jsonify({'error': str(error)}), 422

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException) -> JSONResponse:
        return jsonify({'message': error.description}), error.code

    @app.route('/v1/post', methods=['POST'])
    @require_api_key
    def create_post() -> JSONResponse:
        body = _json_body()
        title : str = _required_text(body, 'title')
        content : str = _required_text(body, 'content')
        post : Post = posts.insert(title, content)
        return jsonify({'post': post.to_dict()})

    @app.route('/v1/post/<int:post_id>', methods=['GET'])
    def read_post(post_id: int) -> JSONResponse:
        post : Post = posts.get_by_id(post_id)
        return jsonify({'post': post.to_dict()})

    @app.route('/v1/post', methods=['PUT'])
    @require_api_key
    def update_post() -> JSONResponse:
        body = _json_body()
        post_id : int = _required_id(body)
        title : str = _required_text(body, 'title')
        content : str = _required_text(body, 'content')
        post : Post = posts.update_by_id(post_id, title, content)
        return jsonify({'post': post.to_dict()})

    @app.route('/v1/post/<int:post_id>', methods=['DELETE'])
    @require_api_key
    def delete_post(post_id: int) -> JSONResponse:
        posts.delete_by_id(post_id)
        return jsonify({'message': REMOVED_MESSAGE})

    return app


def main() -> None:
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    try:
        app : Flask = create_app()
    except SQLAlchemyError as exc:
        logger.critical('Database cannot be established: %s', exc)
        sys.exit(1)
    port : int = app.config['PORT']
    logger.info('Post API running on port %d', port)
    app.run(host=app.config['HOST'], port=port)


if __name__ == '__main__':
    main()
