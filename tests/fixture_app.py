"""Small FastAPI application the session tests drive."""

from __future__ import annotations

import html
import re

import yaml
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, RedirectResponse

_KEYS = re.compile(r"\[([^\]]*)\]")


class FixtureAppError(Exception):
    """Raised on purpose by the ``/error`` route."""


def _page(body: str, title: str = "Fixture") -> HTMLResponse:
    return HTMLResponse(
        f"<!DOCTYPE html><html><head><title>{title}</title></head><body>{body}</body></html>"
    )


def _results(data: object) -> HTMLResponse:
    dumped = html.escape(yaml.safe_dump(data, sort_keys=True))
    return _page(f'<pre id="results">{dumped}</pre>', title="Results")


def group_form_params(items: list[tuple[str, str]]) -> dict[str, object]:
    """Rebuild nested ``form[...]`` parameters the way Rack-style servers do."""

    results: dict[str, object] = {}
    for name, value in items:
        if not name.startswith("form["):
            continue
        keys = _KEYS.findall(name)
        if len(keys) == 1:
            results[keys[0]] = value
        elif len(keys) == 2 and keys[1] == "":
            results.setdefault(keys[0], []).append(value)
        elif len(keys) == 3 and keys[1] == "":
            records = results.setdefault(keys[0], [])
            if not records or keys[2] in records[-1]:
                records.append({})
            records[-1][keys[2]] = value
    return results


FORM_PAGE = """
<h1>Form</h1>
<form action="/form" method="post" id="main_form">
  <p>
    <label for="form_first_name">First Name</label>
    <input type="text" name="form[first_name]" id="form_first_name" value="John"/>
  </p>
  <p>
    <label for="form_last_name">Last Name</label>
    <input type="text" name="form[last_name]" id="form_last_name" placeholder="Smith"/>
  </p>
  <p>
    <label>Email <input type="email" name="form[email]" id="form_email"/></label>
  </p>
  <p>
    <input type="text" name="form[nickname]" placeholder="Nickname"/>
  </p>
  <p>
    <label for="form_description">Description</label>
    <textarea name="form[description]" id="form_description">Descriptive text goes here</textarea>
  </p>
  <p>
    <label for="form_locale">Locale</label>
    <select name="form[locale]" id="form_locale">
      <option value="sv">Swedish</option>
      <option value="en" selected="selected">English</option>
      <option value="fi">Finnish</option>
    </select>
  </p>
  <p>
    <label for="form_languages">Languages</label>
    <select name="form[languages][]" id="form_languages" multiple="multiple">
      <option selected="selected">Ruby</option>
      <option>Python</option>
      <option>Go</option>
    </select>
  </p>
  <p>
    <input type="checkbox" name="form[pets][]" id="form_pets_dog" value="dog" checked="checked"/>
    <label for="form_pets_dog">Dog</label>
    <input type="checkbox" name="form[pets][]" id="form_pets_cat" value="cat"/>
    <label for="form_pets_cat">Cat</label>
  </p>
  <p>
    <input type="radio" name="form[gender]" value="male" id="gender_male"/>
    <label for="gender_male">Male</label>
    <input type="radio" name="form[gender]" value="female" id="gender_female" checked="checked"/>
    <label for="gender_female">Female</label>
  </p>
  <input type="hidden" name="form[token]" value="12345"/>
  <input type="text" name="form[disabled_text]" id="form_disabled_text" value="locked" disabled="disabled"/>
  <fieldset id="address1">
    <legend>Address 1</legend>
    <label for="address1_city">City</label>
    <input type="text" name="form[addresses][][city]" id="address1_city"/>
    <label for="address1_street">Street</label>
    <input type="text" name="form[addresses][][street]" id="address1_street"/>
    <label for="address1_country">Country</label>
    <select name="form[addresses][][country]" id="address1_country">
      <option>France</option>
      <option>Ukraine</option>
    </select>
  </fieldset>
  <fieldset id="address2">
    <legend>Address 2</legend>
    <label for="address2_city">City</label>
    <input type="text" name="form[addresses][][city]" id="address2_city"/>
    <label for="address2_street">Street</label>
    <input type="text" name="form[addresses][][street]" id="address2_street"/>
    <label for="address2_country">Country</label>
    <select name="form[addresses][][country]" id="address2_country">
      <option>France</option>
      <option>Ukraine</option>
    </select>
  </fieldset>
  <p>
    <input type="submit" name="form[awesome]" id="awesome" value="awesome"/>
    <button type="submit" name="form[no_value]" id="click_me">Click me!</button>
    <input type="button" value="Does nothing" id="noop"/>
  </p>
</form>

<form action="/upload" method="post" enctype="multipart/form-data">
  <label for="form_document">Document</label>
  <input type="file" name="form[document]" id="form_document"/>
  <input type="text" name="form[note]" id="form_note" value="attached"/>
  <input type="submit" value="Upload"/>
</form>

<form action="/search?stale=1" method="get">
  <label for="search_q">Query</label>
  <input type="text" name="q" id="search_q"/>
  <input type="submit" value="Search"/>
</form>
"""

WITH_HTML_PAGE = """
<h1>This is a test</h1>
<p class="para" id="first">
  Lorem ipsum dolor sit amet, consectetur adipisicing elit, sed do eiusmod
  <a href="/with_simple_html" title="awesome title" class="simple">labore</a>
  et dolore magna aliqua.
</p>
<p class="para" id="second">
  Duis aute irure dolor in reprehenderit in <a href="/redirect" id="red">BackToMyself</a>
  <a href="#anchor" id="anchor_link">Anchor</a>
  <a id="no_href">no href</a>
  <a href="/foo"><img src="/logo.png" alt="awesome image"/></a>
</p>
<div id="hidden_text" style="display:none">Hidden text</div>
<table id="agents">
  <caption>Agents</caption>
  <tr><th>Name</th></tr>
  <tr><td>Smith</td></tr>
</table>
<script>document.write("scripted");</script>
<ul>
  <li>Alpha</li>
  <li>Beta</li>
  <li>Beta Gamma</li>
</ul>
"""


def create_app() -> FastAPI:
    app = FastAPI(title="Browser Harness fixtures")

    @app.get("/", response_class=HTMLResponse)
    async def home() -> HTMLResponse:
        return _page('<h1>Hello world!</h1><a href="/foo" id="foo">Foo</a>')

    @app.get("/foo", response_class=HTMLResponse)
    async def foo() -> HTMLResponse:
        return _page("<h1>Another World</h1>")

    @app.get("/with_html", response_class=HTMLResponse)
    async def with_html() -> HTMLResponse:
        return _page(WITH_HTML_PAGE, title="With HTML")

    @app.get("/with_simple_html", response_class=HTMLResponse)
    async def with_simple_html() -> HTMLResponse:
        return _page("<p>Bar</p>")

    @app.get("/with_html_entities", response_class=HTMLResponse)
    async def with_html_entities() -> HTMLResponse:
        return _page("<p>Encoding with &mdash; html entities &raquo; and café ☃</p>")

    @app.get("/set_cookie", response_class=HTMLResponse)
    async def set_cookie() -> HTMLResponse:
        response = _page("<p>Cookie set to test_cookie</p>")
        response.set_cookie("harness_cookie", "test_cookie")
        return response

    @app.get("/get_cookie", response_class=HTMLResponse)
    async def get_cookie(request: Request) -> HTMLResponse:
        value = request.cookies.get("harness_cookie", "")
        return _page(f"<p>{html.escape(value)}</p>")

    @app.get("/error")
    async def error() -> None:
        raise FixtureAppError("the application failed on purpose")

    @app.get("/redirect")
    async def redirect() -> RedirectResponse:
        return RedirectResponse("/landed", status_code=302)

    @app.get("/landed", response_class=HTMLResponse)
    async def landed() -> HTMLResponse:
        return _page("<p>You landed</p>")

    @app.get("/form", response_class=HTMLResponse)
    async def form_page() -> HTMLResponse:
        return _page(FORM_PAGE, title="Form")

    @app.post("/form", response_class=HTMLResponse)
    async def submit_form(request: Request) -> HTMLResponse:
        form = await request.form()
        return _results(group_form_params([(name, str(value)) for name, value in form.multi_items()]))

    @app.post("/upload", response_class=HTMLResponse)
    async def upload(request: Request) -> HTMLResponse:
        form = await request.form()
        document = form.get("form[document]")
        content = ""
        filename = ""
        if document is not None and not isinstance(document, str):
            filename = document.filename or ""
            content = (await document.read()).decode("utf-8")
        return _results({"filename": filename, "content": content, "note": form.get("form[note]")})

    @app.get("/search", response_class=HTMLResponse)
    async def search(request: Request) -> HTMLResponse:
        return _results({"query": [[name, value] for name, value in request.query_params.multi_items()]})

    return app
