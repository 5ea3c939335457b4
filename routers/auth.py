import html
import logging
from urllib.parse import quote_plus

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse

from backend import AuthError
from security import _is_login_allowed, _is_signup_allowed, _validate_credentials
from ui import _alert, _notice, _page

logger = logging.getLogger(__name__)

router = APIRouter()


def _redirect_with(path: str, key: str, message: str) -> RedirectResponse:
    return RedirectResponse(url=f"{path}?{key}={quote_plus(message)}", status_code=303)


def _auth_page(mode: str, error: str, success: str, email: str = "") -> str:
    signup = mode == "signup"
    title = "Create Account" if signup else "Log In"
    action = "/signup" if signup else "/login"
    consent = """
      <div class="form-group">
        <label class="inline">
          <input type="checkbox" name="consent" value="1">
          I agree to the processing of my health data as described in the
          <a href="/privacy" style="color:#3b82f6;">Privacy Policy</a>
        </label>
      </div>""" if signup else ""
    switch = (
        '<p style="margin-top:16px; font-size:13px; color:#6b7280;">'
        'Already have an account? <a href="/login" style="color:#3b82f6;">Log in</a></p>'
    ) if signup else (
        '<p style="margin-top:16px; font-size:13px; color:#6b7280;">'
        'No account yet? <a href="/signup" style="color:#3b82f6;">Sign up</a></p>'
    )
    body = f"""
  <div class="container">
    <h1>Headache Diary</h1>
    <p style="color:#555; font-size:14px; margin-bottom:16px;">
      Track your headaches, spot your triggers.
    </p>
    {_alert(error)}
    {_notice(success)}
    <form method="post" action="{action}">
      <div class="form-group">
        <label for="email">Email</label>
        <input type="email" id="email" name="email" value="{html.escape(email)}"
          placeholder="name@example.com" required autocomplete="email">
      </div>
      <div class="form-group">
        <label for="password">Password</label>
        <input type="password" id="password" name="password"
          placeholder="At least 8 characters" required
          autocomplete="{'new-password' if signup else 'current-password'}">
      </div>
      {consent}
      <button type="submit" class="btn-primary">{title}</button>
    </form>
    {switch}
  </div>"""
    return _page(title, body, nav=False)


@router.get("/login", response_class=HTMLResponse)
def login_get(request: Request, error: str = "", success: str = ""):
    if request.app.state.gate.is_authenticated:
        return RedirectResponse(url="/", status_code=303)
    return _auth_page("signin", error, success)


@router.post("/login")
def login_post(request: Request, email: str = Form(""), password: str = Form("")):
    ip = request.client.host if request.client else "unknown"
    if not _is_login_allowed(ip):
        return _redirect_with("/login", "error", "Too many attempts. Please wait before trying again.")
    error = _validate_credentials(email, password)
    if error:
        return _redirect_with("/login", "error", error)
    try:
        request.app.state.auth.sign_in(email.strip(), password)
    except AuthError as exc:
        return _redirect_with("/login", "error", exc.message)
    return RedirectResponse(url="/", status_code=303)


@router.get("/signup", response_class=HTMLResponse)
def signup_get(request: Request, error: str = ""):
    if request.app.state.gate.is_authenticated:
        return RedirectResponse(url="/", status_code=303)
    return _auth_page("signup", error, "")


@router.post("/signup")
def signup_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    consent: str = Form(""),
):
    ip = request.client.host if request.client else "unknown"
    if not _is_signup_allowed(ip):
        return _redirect_with("/signup", "error", "Too many attempts. Please wait before trying again.")
    error = _validate_credentials(email, password)
    if error:
        return _redirect_with("/signup", "error", error)
    if not consent:
        return _redirect_with("/signup", "error", "You must accept the privacy policy to sign up")
    try:
        session = request.app.state.auth.sign_up(email.strip(), password)
    except AuthError as exc:
        return _redirect_with("/signup", "error", exc.message)
    if session is None:
        return _redirect_with("/login", "success", "Check your email for the confirmation link!")
    return RedirectResponse(url="/", status_code=303)


@router.post("/logout")
def logout(request: Request):
    request.app.state.auth.sign_out()
    return RedirectResponse(url="/login", status_code=303)


@router.get("/privacy", response_class=HTMLResponse)
def privacy():
    body = """
  <div class="container">
    <h1>Privacy Policy</h1>
    <div class="card" style="font-size:14px; line-height:1.55;">
      <h3>What we store</h3>
      <p>Your email address and the headache episodes you record: times, intensity,
         pain character, affected zones, symptoms, triggers, medication, food and notes.</p>
      <h3>Why</h3>
      <p>Only to show you your own history and statistics. The data is health data
         and is processed on the basis of your explicit consent.</p>
      <h3>Where</h3>
      <p>Episodes live in the hosted database behind this app. Every row is bound to
         your account and row-level access rules let only you read or change it.</p>
      <h3>Your rights</h3>
      <ul>
        <li><strong>Access and portability:</strong> download everything as CSV from Analytics.</li>
        <li><strong>Rectification:</strong> edit any episode at any time.</li>
        <li><strong>Erasure:</strong> delete single episodes, or ask for account deletion.</li>
        <li><strong>Withdrawal:</strong> you may withdraw consent at any time by deleting your data.</li>
      </ul>
    </div>
    <a href="/signup" class="back">&larr; Back</a>
  </div>"""
    return _page("Privacy Policy", body, nav=False)
