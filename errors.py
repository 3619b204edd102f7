"""
应用异常定义

校验错误在本地处理，后端错误以消息形式返回给前端，
“未找到”不作为异常，查询函数直接返回None。
"""


class AppError(Exception):
    """所有可以直接转换为HTTP响应的异常"""
    status_code = 500

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'status': 'error', 'message': self.message}


class ValidationError(AppError):
    """表单字段不合法"""
    status_code = 400


class AuthRequiredError(AppError):
    status_code = 401


class PermissionDeniedError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    status_code = 409


class BackendError(AppError):
    """Supabase 调用失败（网络、约束冲突等）"""
    status_code = 502


class PdfReselectRequired(AppError):
    """PDF文件内容在页面重新加载后丢失，需要用户重新选择文件"""
    status_code = 409

    def __init__(self, name, last_modified=None):
        super().__init__(f'文件 "{name}" 需要重新选择')
        self.name = name
        self.last_modified = last_modified

    def to_dict(self):
        data = super().to_dict()
        data['reselect'] = {'name': self.name, 'lastModified': self.last_modified}
        return data
