"""认证服务：封装注册、登录、退出、个人资料、修改密码与找回密码。"""

import re
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.packages.drive.core.config import Settings, get_settings
from app.packages.drive.core.constants import (
    ACCESS_TOKEN_TYPE,
    DEFAULT_USER_ROLE,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_OK,
)
from app.packages.drive.core.exceptions import AppException, Forbidden, Unauthorized, ValidationFailed
from app.packages.drive.core.logger import logger
from app.packages.drive.core.responses import create_response
from app.packages.drive.core.security import (
    create_access_token,
    get_password_hash,
    random_code,
    store_refreshed_token,
    verify_password,
)
from app.packages.drive.core.session import (
    consume_verify_code,
    create_session,
    delete_session,
    revoke_user_sessions,
    save_verify_code,
)
from app.packages.drive.core.timezone import format_datetime
from app.packages.drive.crud.roles import role_crud
from app.packages.drive.crud.users import user_crud
from app.packages.drive.models.user import User
from app.packages.drive.services.rbac_service import RbacService, rbac_service

RESET_PASSWORD_PURPOSE = "reset_password"
FORGOT_PASSWORD_MESSAGE = "如果该邮箱已注册，重置密码的验证码已发送至您的邮箱"
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]{3,20}$")


def check_password_strength(password: str) -> None:
    """新密码至少 8 位，且同时包含大写字母、小写字母和数字。"""
    if len(password) < 8:
        raise ValidationFailed("密码长度至少为8个字符")
    if not re.search(r"[A-Z]", password):
        raise ValidationFailed("密码必须包含至少一个大写字母")
    if not re.search(r"[a-z]", password):
        raise ValidationFailed("密码必须包含至少一个小写字母")
    if not re.search(r"[0-9]", password):
        raise ValidationFailed("密码必须包含至少一个数字")


def log_reset_code(user: User, code: str) -> None:
    """默认的验证码投递：未接入邮件通道时只写日志。"""
    logger.info("Password reset code issued for user %s", user.id)
    logger.debug("Password reset code for user %s: %s", user.id, code)


class AuthService:
    """负责处理用户注册与登录流程，并保持逻辑聚合。"""

    def __init__(
        self,
        settings: Settings,
        rbac: RbacService,
        code_sender: Callable[[User, str], None] = log_reset_code,
    ) -> None:
        self.settings = settings
        self.rbac = rbac
        self.code_sender = code_sender

    def register_user(
        self,
        db: Session,
        *,
        username: str,
        password: str,
        email: Optional[str] = None,
        nickname: Optional[str] = None,
    ) -> Dict[str, Any]:
        """创建新用户并赋予默认的 viewer 角色。"""
        username = username.strip()
        if user_crud.username_taken(db, username):
            raise AppException("用户名已存在", HTTP_STATUS_CONFLICT)
        email = (email or "").strip() or None
        if email and user_crud.get_by_email(db, email) is not None:
            raise AppException("邮箱已被使用", HTTP_STATUS_CONFLICT)

        user = User(
            username=username,
            email=email,
            nickname=(nickname or "").strip() or None,
            hashed_password=get_password_hash(password),
            is_owner=False,
            is_active=True,
        )
        default_role = role_crud.get_by_name(db, DEFAULT_USER_ROLE)
        if default_role is not None:
            user.roles = [default_role]
        else:
            logger.warning("Default role %s missing, user %s registered without roles", DEFAULT_USER_ROLE, username)
        user = user_crud.save(db, user)

        data = {
            "user_id": user.id,
            "username": user.username,
            "roles": [role.name for role in user.roles],
        }
        return create_response("注册成功", data, HTTP_STATUS_OK)

    def login(self, db: Session, *, username: str, password: str) -> Dict[str, Any]:
        """校验用户凭证并签发访问令牌，用户名不存在与密码错误返回相同提示。"""
        user = user_crud.get_by_username(db, username.strip())
        if user is None or not verify_password(password, user.hashed_password):
            logger.info("Login failed for %s", username)
            raise Unauthorized("用户名或密码错误")
        if not user.is_active:
            raise Forbidden("用户未激活")

        ttl_seconds = max(self.settings.access_token_expire_minutes, 1) * 60
        session_id = create_session(user.id, ttl_seconds)
        access_token = create_access_token({"user_id": user.id, "username": user.username, "sid": session_id})
        store_refreshed_token(access_token)
        logger.info("User %s logged in", user.id)

        return create_response(
            "登录成功",
            {"access_token": access_token, "token_type": ACCESS_TOKEN_TYPE},
            HTTP_STATUS_OK,
        )

    def logout(self, session_id: Optional[str]) -> Dict[str, Any]:
        """删除令牌对应的会话，之后同一令牌不再可用。"""
        if session_id:
            delete_session(session_id)
        store_refreshed_token(None)
        return create_response("退出登录成功", None, HTTP_STATUS_OK)

    def build_profile(self, db: Session, user: User) -> Dict[str, Any]:
        data = {
            "user_id": user.id,
            "username": user.username,
            "email": user.email,
            "nickname": user.nickname,
            "avatar_url": user.avatar_url,
            "is_owner": user.is_owner,
            "roles": [role.name for role in self.rbac.get_user_roles(db, user.id)],
            "permissions": sorted(self.rbac.get_user_permissions(db, user.id)),
        }
        return create_response("获取用户信息成功", data, HTTP_STATUS_OK)

    # ----------------------------
    # 个人设置
    # ----------------------------
    def get_settings_profile(self, user: User) -> Dict[str, Any]:
        return create_response("获取个人资料成功", self._serialize_profile(user), HTTP_STATUS_OK)

    def update_profile(
        self,
        db: Session,
        user: User,
        *,
        username: str,
        nickname: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        username = username.strip()
        if not USERNAME_PATTERN.match(username):
            raise ValidationFailed("用户名只能包含字母、数字和下划线，长度 3-20")
        if username != user.username and user_crud.username_taken(db, username, exclude_id=user.id):
            raise ValidationFailed("用户名已被使用")

        user.username = username
        if nickname is not None:
            user.nickname = nickname.strip() or None
        user.avatar_url = (avatar_url or "").strip() or None
        user = user_crud.save(db, user)
        return create_response("资料更新成功", self._serialize_profile(user), HTTP_STATUS_OK)

    def change_password(
        self,
        db: Session,
        user: User,
        *,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> Dict[str, Any]:
        if new_password != confirm_password:
            raise ValidationFailed("两次输入的密码不匹配")
        check_password_strength(new_password)
        if not verify_password(current_password, user.hashed_password):
            raise ValidationFailed("当前密码错误")
        if verify_password(new_password, user.hashed_password):
            raise ValidationFailed("新密码不能与当前密码相同")

        user.hashed_password = get_password_hash(new_password)
        user_crud.save(db, user)
        logger.info("User %s changed password", user.id)
        return create_response("密码修改成功", None, HTTP_STATUS_OK)

    # ----------------------------
    # 找回密码
    # ----------------------------
    def forgot_password(self, db: Session, *, email: str) -> Dict[str, Any]:
        """无论邮箱是否注册都返回相同结果，仅对有效账号生成验证码。"""
        email = email.strip()
        user = user_crud.get_by_email(db, email)
        if user is not None and user.is_active and not user.is_deleted:
            code = random_code()
            save_verify_code(
                RESET_PASSWORD_PURPOSE,
                email,
                code,
                max(self.settings.password_reset_code_ttl_minutes, 1) * 60,
            )
            try:
                self.code_sender(user, code)
            except Exception:
                logger.warning("Failed to deliver password reset code to user %s", user.id, exc_info=True)
        return create_response(FORGOT_PASSWORD_MESSAGE, None, HTTP_STATUS_OK)

    def reset_password(self, db: Session, *, email: str, code: str, new_password: str) -> Dict[str, Any]:
        """验证码一次有效；重置后吊销该用户的全部会话。"""
        email = email.strip()
        check_password_strength(new_password)
        if not consume_verify_code(RESET_PASSWORD_PURPOSE, email, code):
            raise ValidationFailed("验证码错误或已过期")
        user = user_crud.get_by_email(db, email)
        if user is None or user.is_deleted:
            raise ValidationFailed("验证码错误或已过期")

        user.hashed_password = get_password_hash(new_password)
        user_crud.save(db, user)
        revoked = revoke_user_sessions(user.id)
        logger.info("User %s reset password, %s sessions revoked", user.id, revoked)
        return create_response("密码重置成功", None, HTTP_STATUS_OK)

    @staticmethod
    def _serialize_profile(user: User) -> Dict[str, Any]:
        return {
            "id": user.id,
            "username": user.username,
            "email": user.email,
            "nickname": user.nickname,
            "avatar_url": user.avatar_url,
            "is_owner": user.is_owner,
            "is_active": user.is_active,
            "create_time": format_datetime(user.create_time),
            "update_time": format_datetime(user.update_time),
        }


auth_service = AuthService(get_settings(), rbac_service)
