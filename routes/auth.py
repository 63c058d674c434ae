"""Authentication blueprint: registration, session login/logout and the current user."""
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from wtforms import PasswordField, StringField
from wtforms.validators import DataRequired, Email, EqualTo, Length

from extensions import db
from models import User, utcnow
from utils.errors import Conflict, Forbidden, Unauthorized, ValidationFailed, first_form_error
from utils.security import clean_text, json_form_data, password_meets_policy
from utils.transactions import atomic

auth_bp = Blueprint("auth", __name__)


class RegistrationForm(FlaskForm):
    class Meta:
        csrf = False

    name = StringField("Name", validators=[DataRequired(), Length(min=2, max=150)])
    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired(), Length(min=12)])
    confirm_password = PasswordField(
        "Confirm Password", validators=[DataRequired(), EqualTo("password", message="Passwords must match.")]
    )


class LoginForm(FlaskForm):
    class Meta:
        csrf = False

    email = StringField("Email", validators=[DataRequired(), Email(), Length(max=255)])
    password = PasswordField("Password", validators=[DataRequired()])


def _require_json_object() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return payload


def _validate(form: FlaskForm) -> None:
    if not form.validate():
        raise ValidationFailed(first_form_error(form.errors), fields=form.errors)


@auth_bp.route("/register", methods=["POST"])
def register():
    payload = _require_json_object()
    form = RegistrationForm(formdata=json_form_data(payload))
    _validate(form)

    password_ok, reason = password_meets_policy(form.password.data)
    if not password_ok:
        raise ValidationFailed(reason, fields={"password": [reason]})

    email = form.email.data.lower().strip()
    if User.query.filter_by(email=email).first():
        raise Conflict("An account with this email already exists.")

    user = User(
        name=clean_text(form.name.data),
        email=email,
        role="USER",
        is_active=True,
    )
    user.set_password(form.password.data)
    with atomic("register_user", email=user.email):
        db.session.add(user)

    current_app.logger.info("user_registered", extra={"user_id": user.id})
    return jsonify(user.to_dict()), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    payload = _require_json_object()
    form = LoginForm(formdata=json_form_data(payload))
    _validate(form)

    user = User.query.filter_by(email=form.email.data.lower().strip()).first()
    if not user or not user.check_password(form.password.data):
        current_app.logger.warning("Failed login attempt", extra={"email": form.email.data.lower().strip()})
        raise Unauthorized("Invalid credentials provided.")
    if not user.is_active:
        raise Forbidden("Your account is inactive. Please contact an administrator.")

    login_user(user, remember=payload.get("rememberMe") is True, duration=timedelta(days=30))
    session.permanent = True
    user.last_login_at = utcnow()
    db.session.commit()
    current_app.logger.info("user_logged_in", extra={"user_id": user.id, "role": user.role})
    return jsonify(user.to_dict())


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    user_id = current_user.id
    logout_user()
    session.clear()
    current_app.logger.info("user_logged_out", extra={"user_id": user_id})
    return jsonify({"success": True})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(current_user.to_dict())
