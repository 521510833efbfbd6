"""
API server module for the NearbyCities package.

This module provides a Flask-based API server that returns the cities near
a city name, a pair of coordinates or the caller's IP address.
"""

import time
from typing import Dict, Any, List, Optional, Tuple, Callable
from functools import wraps

from flask import Flask, request, Response, g, current_app
import werkzeug.exceptions

from NearbyCities import __version__
from NearbyCities.config.manager import get_config
from NearbyCities.exceptions import (
    NearbyCitiesError, InvalidParameterError, NoMatchError, ValidationError
)
from NearbyCities.geo.geohash import MAX_PRECISION, decode, encode
from NearbyCities.services.city_service import CityService
from NearbyCities.utils import handle_exception
from NearbyCities.utils.logging import get_logger, get_request_id

# Get a logger for this module
logger = get_logger(__name__)

REQUEST_ID_HEADER = 'Request-Id'

_TRUE_VALUES = ('1', 'true', 'yes', 'on')
_FALSE_VALUES = ('0', 'false', 'no', 'off')


def format_response(data: Any = None, message: str = None,
                    error: str = None, status_code: int = 200,
                    meta: Dict[str, Any] = None,
                    error_code: str = None) -> Tuple[Dict[str, Any], int]:
    """
    Format API response in a standardized structure.

    Args:
        data: Response data payload
        message: Optional success message
        error: Optional error message
        status_code: HTTP status code
        meta: Optional metadata dictionary
        error_code: Optional error code identifier

    Returns:
        Tuple of (response_dict, status_code)
    """
    response = {
        'success': 200 <= status_code < 300,
        'status_code': status_code,
    }

    if data is not None:
        response['data'] = data

    if message:
        response['message'] = message

    if error:
        response['error'] = error

    if error_code:
        response['error_code'] = error_code

    meta = dict(meta or {})
    if g and 'request_id' in g:
        meta.setdefault('request_id', g.request_id)
    if meta:
        response['meta'] = meta

    return response, status_code


def api_response(f: Callable) -> Callable:
    """
    Decorator to standardize API responses.

    NearbyCities errors are left to the application's error handlers so that
    they map to their own status codes.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            result = f(*args, **kwargs)
        except werkzeug.exceptions.HTTPException as e:
            logger.warning(f"HTTP exception in {f.__name__}: {str(e)}")
            return format_response(
                error=e.__class__.__name__,
                message=str(e.description),
                status_code=e.code
            )

        if isinstance(result, tuple) and len(result) == 2:
            data, status_code = result
            return format_response(data=data, status_code=status_code)
        return format_response(data=result)

    return decorated_function


def get_city_service() -> CityService:
    """
    Get the CityService instance of the current application.
    """
    return current_app.config['CITY_SERVICE_INSTANCE']


def get_client_ip() -> Optional[str]:
    """
    Get the caller's IP address.

    When proxy headers are trusted the first address of ``X-Forwarded-For``
    wins, then ``X-Real-IP``, then the socket peer address.
    """
    if current_app.config.get('TRUST_PROXY_HEADERS', False):
        forwarded_for = request.headers.get('X-Forwarded-For', '')
        first_hop = forwarded_for.split(',')[0].strip()
        if first_hop:
            return first_hop

        real_ip = request.headers.get('X-Real-IP', '').strip()
        if real_ip:
            return real_ip

    return request.remote_addr


def _float_arg(name: str) -> Optional[float]:
    value = request.args.get(name)
    return float(value) if value not in (None, '') else None


def _bool_arg(name: str) -> Optional[bool]:
    value = request.args.get(name)
    if value in (None, ''):
        return None
    if value.lower() in _TRUE_VALUES:
        return True
    if value.lower() in _FALSE_VALUES:
        return False
    raise InvalidParameterError(
        message=f"Parameter {name} must be a boolean, got {value!r}",
        user_message=f"Invalid parameters: {name} must be true or false",
        context={'errors': [f"Parameter must be boolean: {name}"]}
    )


def validate_params(required_params: Optional[List[str]] = None,
                    numeric_params: Optional[List[str]] = None,
                    integer_params: Optional[List[str]] = None):
    """
    Decorator for validating request parameters.

    Args:
        required_params: List of required parameter names
        numeric_params: List of parameters that must be numeric
        integer_params: List of parameters that must be integers

    Returns:
        A decorated function
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            params = request.args.to_dict()
            errors = []

            for param in required_params or []:
                if not params.get(param, '').strip():
                    errors.append(f"Missing required parameter: {param}")

            for param in numeric_params or []:
                if params.get(param):
                    try:
                        float(params[param])
                    except ValueError:
                        errors.append(f"Parameter must be numeric: {param}")

            for param in integer_params or []:
                if params.get(param):
                    try:
                        int(params[param])
                    except ValueError:
                        errors.append(f"Parameter must be an integer: {param}")

            if errors:
                raise InvalidParameterError(
                    message=f"Validation errors: {', '.join(errors)}",
                    user_message=f"Invalid parameters: {', '.join(errors)}",
                    context={'errors': errors}
                )

            return f(*args, **kwargs)

        return decorated_function

    return decorator


def create_app(db_uri: Optional[str] = None, debug: bool = False,
               csv_path: Optional[str] = None, ip2location_path: Optional[str] = None,
               prepare: bool = True) -> Flask:
    """
    Create and configure a Flask application instance.

    The spatial index is built before the application is returned, so a
    failing build prevents the server from starting.

    Args:
        db_uri: Optional database URI to use for the app
        debug: Enable debug mode with additional error information
        csv_path: World cities CSV used when the index must be built
        ip2location_path: IP2Location CSV used when the index must be built
        prepare: Build the spatial index if it does not exist yet

    Returns:
        A configured Flask application

    Raises:
        IndexBuildError: If the spatial index cannot be built
        DataImportError: If the city data cannot be found
    """
    config = get_config()
    app = Flask(__name__)

    app.config.update(
        DEBUG=debug,
        TRUST_PROXY_HEADERS=config.get("api.trust_proxy_headers", False)
    )

    logger.info("Creating Flask application")
    start_time = time.time()

    city_service = CityService(db_uri=db_uri)
    if prepare:
        try:
            indexed = city_service.prepare(csv_path=csv_path, ip2location_path=ip2location_path)
        except Exception:
            city_service.close()
            raise
        if indexed:
            logger.info(f"Indexed {indexed} cities in {time.time() - start_time:.2f}s")

    app.config['CITY_SERVICE_INSTANCE'] = city_service

    # Configure JSON responses
    app.json.sort_keys = False
    app.json.ensure_ascii = False

    @app.before_request
    def before_request() -> None:
        """Set up request context with timing information and a request id."""
        g.start_time = time.time()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or get_request_id()

    @app.after_request
    def after_request(response: Response) -> Response:
        """Log the request and add the tracing headers."""
        response.headers[REQUEST_ID_HEADER] = g.get('request_id', '')

        if 'start_time' in g:
            duration_ms = (time.time() - g.start_time) * 1000
            response.headers['X-Request-Duration-Ms'] = str(int(duration_ms))

            if not request.path.startswith('/static'):
                logger.info(
                    f"{request.method} {request.path} {response.status_code}",
                    extra={
                        'method': request.method,
                        'url': request.url,
                        'status': response.status_code,
                        'size': response.calculate_content_length(),
                        'duration_ms': round(duration_ms, 2),
                        'ip': get_client_ip(),
                        'user_agent': request.headers.get('User-Agent'),
                        'referer': request.headers.get('Referer'),
                        'request_id': g.request_id,
                    }
                )

        return response

    @app.errorhandler(werkzeug.exceptions.BadRequest)
    def handle_bad_request(error: werkzeug.exceptions.BadRequest) -> Tuple[Dict[str, Any], int]:
        """Handle bad request errors."""
        return format_response(
            error='Bad Request',
            message=str(error.description),
            status_code=400,
            error_code=InvalidParameterError.error_code,
            meta={'debug_info': str(error)} if debug else None
        )

    @app.errorhandler(werkzeug.exceptions.NotFound)
    def handle_not_found(error: werkzeug.exceptions.NotFound) -> Tuple[Dict[str, Any], int]:
        """Handle not found errors."""
        return format_response(
            error='Not Found',
            message=str(error.description),
            status_code=404,
            meta={'debug_info': str(error)} if debug else None
        )

    @app.errorhandler(werkzeug.exceptions.MethodNotAllowed)
    def handle_method_not_allowed(error: werkzeug.exceptions.MethodNotAllowed) -> Tuple[Dict[str, Any], int]:
        return format_response(
            error='Method Not Allowed',
            message=str(error.description),
            status_code=405
        )

    @app.errorhandler(NearbyCitiesError)
    def handle_nearby_cities_error(error: NearbyCitiesError) -> Tuple[Dict[str, Any], int]:
        """Handle NearbyCities-specific exceptions."""
        handle_exception(error, logger)

        error_dict = error.to_dict(include_details=debug)

        return format_response(
            error=error.__class__.__name__,
            message=error.user_message,
            status_code=error.status_code,
            error_code=error.error_code,
            meta=error_dict.get('technical_details') if debug else None
        )

    @app.errorhandler(Exception)
    def handle_unexpected_exception(error: Exception) -> Tuple[Dict[str, Any], int]:
        """Handle generic exceptions."""
        if isinstance(error, werkzeug.exceptions.HTTPException):
            return format_response(
                error=error.__class__.__name__,
                message=str(error.description),
                status_code=error.code
            )

        system_error = NearbyCitiesError(
            message=f"Unhandled exception: {error}",
            user_message="An unexpected error occurred.",
            error_code="NC-SYS-5000",
            status_code=500,
            cause=error
        )
        return handle_nearby_cities_error(system_error)

    register_routes(app)

    return app


def register_routes(app: Flask) -> None:
    """
    Register API routes with the Flask application.

    Args:
        app: Flask application instance
    """
    @app.route('/', methods=['GET'])
    @api_response
    def nearby_caller() -> Dict[str, Any]:
        """
        Cities near the caller, located from their IP address.

        Callers that cannot be located (private, unknown or non-IPv4
        addresses) get a successful, empty result with ``located: false``.
        """
        ip = get_client_ip()
        city_service = get_city_service()

        try:
            result = city_service.nearby_by_ip(ip)
        except (NoMatchError, ValidationError) as e:
            logger.debug(f"Could not locate caller {ip}: {e.message}")
            return {
                'located': False,
                'ip': ip,
                'origin': None,
                'count': 0,
                'cities': []
            }

        result['located'] = True
        result['ip'] = ip
        return result

    @app.route('/search', methods=['GET'])
    @validate_params(required_params=['city'], numeric_params=['radius_km'])
    @api_response
    def search() -> Dict[str, Any]:
        """
        Cities near the city best matching a name.

        Query parameters:
            city: City name (punctuation is ignored)
            radius_km: Search radius in kilometers (default: search.radius_km)
            strict: Drop cities farther than radius_km
        """
        city_service = get_city_service()
        return city_service.nearby_by_name(
            request.args.get('city'),
            radius_km=_float_arg('radius_km'),
            strict=_bool_arg('strict')
        )

    @app.route('/api/nearby', methods=['GET'])
    @validate_params(required_params=['lat', 'lng'], numeric_params=['lat', 'lng', 'radius_km'])
    @api_response
    def nearby() -> Dict[str, Any]:
        """
        Cities near a pair of coordinates.

        Query parameters:
            lat: Latitude value (-90 to 90)
            lng: Longitude value (-180 to 180)
            radius_km: Search radius in kilometers (default: search.radius_km)
            strict: Drop cities farther than radius_km
        """
        lat = _float_arg('lat')
        lng = _float_arg('lng')
        radius_km = _float_arg('radius_km')

        city_service = get_city_service()
        cities = city_service.nearby_by_coordinates(lat, lng, radius_km=radius_km, strict=_bool_arg('strict'))

        return {
            'center': {
                'lat': lat,
                'lng': lng
            },
            'radius_km': radius_km if radius_km is not None else get_config().get("search.radius_km"),
            'count': len(cities),
            'cities': cities
        }

    @app.route('/api/ip', methods=['GET'])
    @validate_params(required_params=['ip'], numeric_params=['radius_km'])
    @api_response
    def nearby_ip() -> Dict[str, Any]:
        """
        Cities near the location of an IPv4 address.

        Query parameters:
            ip: IPv4 address
            radius_km: Search radius in kilometers (default: search.radius_km)
        """
        city_service = get_city_service()
        return city_service.nearby_by_ip(
            request.args.get('ip').strip(),
            radius_km=_float_arg('radius_km'),
            strict=_bool_arg('strict')
        )

    @app.route('/api/geohash', methods=['GET'])
    @validate_params(required_params=['lat', 'lng'], numeric_params=['lat', 'lng'], integer_params=['precision'])
    @api_response
    def geohash() -> Dict[str, Any]:
        """
        Encode coordinates and return the geohash cell.

        Query parameters:
            lat: Latitude value (-90 to 90)
            lng: Longitude value (-180 to 180)
            precision: Geohash length (1 to 12, default: 12)
        """
        precision = int(request.args.get('precision') or MAX_PRECISION)
        code = encode(_float_arg('lat'), _float_arg('lng'), precision)
        cell = decode(code)
        center_lat, center_lng = cell.center

        return {
            'geohash': code,
            'precision': precision,
            'cell': cell._asdict(),
            'center': {
                'lat': center_lat,
                'lng': center_lng
            }
        }

    @app.route('/health', methods=['GET'])
    @api_response
    def health() -> Dict[str, Any]:
        """
        Health check endpoint.
        """
        return {
            'status': 'ok',
            'service': 'NearbyCities API',
            'version': __version__,
            'timestamp': time.time()
        }

    @app.route('/api/status', methods=['GET'])
    @api_response
    def status() -> Dict[str, Any]:
        """API status check with database information."""
        city_service = get_city_service()
        return {'table_info': city_service.get_table_info()}


def start_server(host: Optional[str] = None, port: Optional[int] = None,
                 db_uri: Optional[str] = None, debug: Optional[bool] = None,
                 csv_path: Optional[str] = None, ip2location_path: Optional[str] = None) -> None:
    """
    Build the spatial index if needed and start the API server.

    Args:
        host: Host address to bind to (default: api.host)
        port: Port to listen on (default: api.port)
        db_uri: Database URI for city data
        debug: Whether to run in debug mode (default: api.debug)
        csv_path: World cities CSV used when the index must be built
        ip2location_path: IP2Location CSV used when the index must be built
    """
    config = get_config()
    host = host or config.get("api.host", "0.0.0.0")
    port = port or config.get("api.port", 8080)
    debug = config.get("api.debug", False) if debug is None else debug

    app = create_app(db_uri, debug, csv_path=csv_path, ip2location_path=ip2location_path)

    logger.info(f"Starting NearbyCities API server on {host}:{port} (debug: {debug})")
    app.run(host=host, port=port, debug=debug)
