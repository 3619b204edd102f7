"""
Nekopress 数据模型

与 Supabase 中 profiles、publications、publication_likes 三张表对应的数据类，
以及只存在于客户端上下文中的临时结构（PDF交接、用户会话）。
后端返回的行在进入应用代码前统一通过 from_row 解析和校验。
"""

from typing import Optional, Dict, Any
from dataclasses import dataclass, asdict, field


def _require(row: Dict[str, Any], key: str, table: str):
    value = row.get(key)
    if value is None or value == '':
        raise ValueError(f"{table} 行缺少字段 {key}")
    return value


@dataclass
class Profile:
    """用户公开资料"""
    id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Profile":
        return cls(
            id=str(_require(row, 'id', 'profiles')),
            username=row.get('username'),
            avatar_url=row.get('avatar_url'),
            bio=row.get('bio'),
            location=row.get('location'),
            email=row.get('email'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class Publication:
    """用户上传的PDF出版物"""
    id: str
    user_id: str
    title: str
    description: str = ''
    pdf_url: str = ''
    thumb_url: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Publication":
        return cls(
            id=str(_require(row, 'id', 'publications')),
            user_id=str(_require(row, 'user_id', 'publications')),
            title=row.get('title') or '',
            description=row.get('description') or '',
            pdf_url=row.get('pdf_url') or '',
            thumb_url=row.get('thumb_url'),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PublicationLike:
    """点赞记录，(publication_id, user_id) 唯一"""
    publication_id: str
    user_id: str

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PublicationLike":
        return cls(
            publication_id=str(_require(row, 'publication_id', 'publication_likes')),
            user_id=str(_require(row, 'user_id', 'publication_likes')),
        )


@dataclass
class User:
    """当前登录用户：数据库资料优先，其次是认证元数据"""
    id: str
    email: str = ''
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_auth(cls, auth_user, profile: Optional[Profile] = None) -> "User":
        metadata = getattr(auth_user, 'user_metadata', None) or {}
        meta_username = metadata.get('username')
        if meta_username:
            # 第三方登录的用户名可能带空格
            meta_username = ''.join(meta_username.split())
        created_at = getattr(auth_user, 'created_at', None)
        return cls(
            id=str(auth_user.id),
            email=getattr(auth_user, 'email', None) or '',
            username=(profile.username if profile else None) or meta_username,
            avatar_url=(profile.avatar_url if profile else None) or metadata.get('avatar_url'),
            bio=(profile.bio if profile else None) or metadata.get('bio'),
            location=(profile.location if profile else None) or metadata.get('location'),
            created_at=str(created_at) if created_at else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PdfFile:
    """一个已选择的PDF文件，content 只存在于当前进程内存中"""
    name: str
    last_modified: int
    content: bytes = field(default=b'', repr=False)


@dataclass
class PendingPdfHandoff:
    """持久化的PDF元数据，跨越重新加载保留"""
    name: str
    last_modified: int

    def to_json_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'lastModified': self.last_modified}

    @classmethod
    def from_json_dict(cls, data: Dict[str, Any]) -> "PendingPdfHandoff":
        return cls(name=data['name'], last_modified=int(data.get('lastModified') or 0))
