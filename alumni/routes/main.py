from flask import Blueprint, jsonify

main_bp = Blueprint('main', __name__)


@main_bp.route('/')
def index():
    """API landing - lists the main entry points."""
    return jsonify({
        'service': 'Alumni Network API',
        'endpoints': {
            'health': '/health',
            'events': '/api/events',
            'register': '/api/events/<id>/register',
            'me': '/api/me',
            'admin': '/api/admin/statistics',
        }
    })


@main_bp.route('/health')
def health():
    """Health check endpoint for the load balancer."""
    return {'status': 'healthy', 'app': 'Alumni Network API'}
