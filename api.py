from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from datetime import datetime
import logging
from config import FLASK_CONFIG, LOGGING_CONFIG
from errors import AppError

# 配置日志
logging.basicConfig(level=LOGGING_CONFIG['level'], format=LOGGING_CONFIG['format'])

# 创建Flask应用
app = Flask(__name__)
app.secret_key = FLASK_CONFIG['secret_key']
CORS(app, supports_credentials=True)

from apis.auth_api import auth_bp
from apis.client_api import client_bp
from apis.handoff_api import handoff_bp
from apis.like_api import like_bp
from apis.profile_api import profile_bp
from apis.publication_api import publication_bp
from apis.viewer_api import viewer_bp

app.register_blueprint(auth_bp)
app.register_blueprint(client_bp)
app.register_blueprint(handoff_bp)
app.register_blueprint(like_bp)
app.register_blueprint(profile_bp)
app.register_blueprint(publication_bp)
app.register_blueprint(viewer_bp)

logger = logging.getLogger(__name__)


@app.errorhandler(AppError)
def handle_app_error(e):
    if e.status_code >= 500:
        logger.error(f"后端错误: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    """未预料的错误统一返回通用提示，不让页面崩溃"""
    # HTTP异常（404、405等）保持原样
    if isinstance(e, HTTPException):
        return jsonify({'status': 'error', 'message': e.description}), e.code
    logger.error(f"未处理的异常: {e}", exc_info=True)
    return jsonify({
        'status': 'error',
        'message': 'Something went wrong. Please try again.'
    }), 500


@app.route('/api/health', methods=['GET'])
def health_check():
    """基础健康检查"""
    return jsonify({
        'status': 'healthy',
        'message': 'Welcome to Nekopress API',
        'timestamp': datetime.now().isoformat()
    })


if __name__ == '__main__':
    app.run(host=FLASK_CONFIG.get('host'), port=FLASK_CONFIG.get('port'), debug=FLASK_CONFIG.get('debug'))
