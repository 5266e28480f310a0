from __future__ import annotations

import hashlib
import logging
from html import escape
from io import StringIO
from typing import Callable, Dict, Iterable, Optional, Tuple
from urllib.parse import urlencode

from fastapi import FastAPI, Form, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from starlette.concurrency import run_in_threadpool

from event_scoring import __version__
from event_scoring.categories import CATEGORY_LABELS, MAX_SCORE, MIN_SCORE, SCORE_STEP, category_label, criteria_for
from event_scoring.config import settings
from event_scoring.consolidation import alphabetical, consolidate, leaderboard_frame
from event_scoring.middleware import NotificationClientMiddleware
from event_scoring.modules import Module
from event_scoring.models import utcnow
from event_scoring.notifications import Severity
from event_scoring.recorder import restrictions_by_judge
from event_scoring.state import AppState, build_state
from event_scoring.statistics import criteria_averages, evaluation_history, project, store_summary

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

SEVERITY_CLASSES = {
    Severity.INFO: "muted",
    Severity.SUCCESS: "ok",
    Severity.WARNING: "warn",
    Severity.ERROR: "danger",
}


def sha256(s: str) -> str:
    return hashlib.sha256(s.encode("utf-8")).hexdigest()


# -----------------------
# UI helpers
# -----------------------
def nav() -> str:
    links = " | ".join(f'<a href="{m.path}">{m.title}</a>' for m in Module)
    return f'<p><a href="/">Home</a> | {links}</p>'


def page(title: str, body: str, messages: Iterable[Tuple[Severity, str]] = ()) -> HTMLResponse:
    notices = "".join(
        f'<p class="{SEVERITY_CLASSES[severity]}">{escape(message)}</p>' for severity, message in messages
    )
    if notices:
        notices = f'<div class="card">{notices}</div>'
    html = f"""
    <html>
      <head>
        <title>{escape(title)}</title>
        <meta name="viewport" content="width=device-width, initial-scale=1.0">
        <style>
          body {{ font-family: system-ui, Arial; max-width: 980px; margin: 0 auto; padding: 22px; }}
          input, select, button {{ font-size: 16px; padding: 10px; }}
          .card {{ border: 1px solid #ddd; border-radius: 12px; padding: 16px; margin: 16px 0; }}
          .row {{ display: flex; gap: 12px; flex-wrap: wrap; align-items: center; }}
          .row > * {{ flex: 1; min-width: 220px; }}
          table {{ border-collapse: collapse; width: 100%; }}
          th, td {{ border: 1px solid #ddd; padding: 8px; }}
          th {{ text-align: left; background: #f7f7f7; }}
          .muted {{ color: #666; }}
          .pill {{ display:inline-block; padding:4px 10px; border:1px solid #ddd; border-radius:999px; }}
          a {{ text-decoration: none; }}
          .danger {{ color: #b00020; }}
          .warn {{ color: #b26a00; }}
          .ok {{ color: #2e7d32; }}
          form.inline {{ display: inline; }}
        </style>
      </head>
      <body>
        <h1>{escape(title)}</h1>
        {nav()}
        {notices}
        {body}
      </body>
    </html>
    """
    return HTMLResponse(html)


def category_options(selected: str = "", blank: Optional[str] = None) -> str:
    options = f'<option value="">{blank}</option>' if blank is not None else ""
    for slug, label in CATEGORY_LABELS.items():
        mark = " selected" if slug == selected else ""
        options += f'<option value="{slug}"{mark}>{escape(label)}</option>'
    return options


def redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url=url, status_code=303)


def admin_password_input() -> str:
    return '<input name="admin_password" placeholder="Admin password" type="password" required />'


def parse_criteria_form(form) -> Dict[str, float]:
    """Read c__<criterion> fields; blank or non-numeric values are left out."""
    scores: Dict[str, float] = {}
    for key, value in form.items():
        if not key.startswith("c__"):
            continue
        try:
            scores[key[3:]] = float(str(value).strip())
        except ValueError:
            continue
    return scores


def create_app(state: Optional[AppState] = None, admin_password: Optional[str] = None) -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, version=__version__)
    app.add_middleware(NotificationClientMiddleware)
    app.state.scoring = state
    admin_pw_hash = sha256(admin_password if admin_password is not None else settings.ADMIN_PASSWORD)

    @app.on_event("startup")
    def _startup():
        if app.state.scoring is None:
            settings.validate()
            app.state.scoring = build_state(settings)
        logger.info(f"Starting {settings.APP_NAME} v{__version__}")

    @app.on_event("shutdown")
    def _shutdown():
        close = getattr(app.state.scoring.persistence, "close", None) if app.state.scoring else None
        if close:
            close()

    def scoring() -> AppState:
        return app.state.scoring

    def render(title: str, body: str) -> HTMLResponse:
        return page(title, body, scoring().notifier.drain())

    def require_admin(password: str) -> None:
        if sha256(password) != admin_pw_hash:
            raise HTTPException(status_code=403, detail="Invalid admin password.")

    # -----------------------
    # Routes: Home
    # -----------------------
    @app.get("/", response_class=HTMLResponse)
    def home():
        counts = store_summary(scoring().store)
        return render(
            settings.APP_NAME,
            f"""
            <div class="card">
              <p><span class="pill">{counts.contestants} contestants</span>
                 <span class="pill">{counts.judges} judges</span>
                 <span class="pill">{counts.evaluations} evaluations</span></p>
              <p class="muted">
                Judges score every criterion from 0.1 to {MAX_SCORE:g}. Each judge evaluates a contestant
                once per category; results add up all evaluations of a contestant in a category.
              </p>
            </div>
            """,
        )

    # -----------------------
    # Routes: Registration
    # -----------------------
    def registration_page():
        body = f"""
        <div class="card">
          <h2>Register Contestant</h2>
          <form method="post" action="/registration/contestant">
            <div class="row">
              <input name="name" placeholder="Full name" required />
              <select name="category" required>{category_options(blank="Select a category")}</select>
            </div>
            <div class="row">
              <input name="email" placeholder="Email" required />
              <input name="phone" placeholder="Phone" required />
            </div>
            <button type="submit">Register</button>
          </form>
        </div>

        <div class="card">
          <h2>Register Judge</h2>
          <form method="post" action="/registration/judge">
            <div class="row">
              <input name="name" placeholder="Full name" required />
              <input name="email" placeholder="Email" required />
            </div>
            <div class="row">
              <input name="years_experience" type="number" min="1" placeholder="Years of experience" required />
              <input name="specialty" placeholder="Specialty" />
            </div>
            <button type="submit">Register</button>
          </form>
        </div>
        """
        return render("Registration", body)

    @app.post("/registration/contestant")
    def register_contestant(
        name: str = Form(""), category: str = Form(""), email: str = Form(""), phone: str = Form("")
    ):
        scoring().store.register_contestant(name, category, email, phone)
        return redirect(Module.REGISTRATION.path)

    @app.post("/registration/judge")
    def register_judge(
        name: str = Form(""), email: str = Form(""), years_experience: str = Form(""), specialty: str = Form("")
    ):
        scoring().store.register_judge(name, email, years_experience, specialty)
        return redirect(Module.REGISTRATION.path)

    # -----------------------
    # Routes: Evaluation
    # -----------------------
    def evaluation_page(judge_id: str = "", contestant_id: str = ""):
        state = scoring()
        store = state.store

        judge_opts = '<option value="">Select a judge</option>' + "".join(
            f'<option value="{j.id}"{" selected" if j.id == judge_id else ""}>{escape(j.name)}</option>'
            for j in store.judges
        )
        contestant_opts = '<option value="">Select a contestant</option>' + "".join(
            f'<option value="{c.id}"{" selected" if c.id == contestant_id else ""}>'
            f"{escape(c.name)} ({escape(category_label(c.category))})</option>"
            for c in store.contestants
        )

        score_form = ""
        judge = store.find_judge(judge_id) if judge_id else None
        contestant = store.find_contestant(contestant_id) if contestant_id else None
        if judge and contestant:
            if state.recorder.already_evaluated(judge.id, contestant.id):
                state.notifier.notify(
                    f"{judge.name} already evaluated {contestant.name} in "
                    f"{category_label(contestant.category)}. Select a different combination.",
                    Severity.WARNING,
                )
            else:
                inputs = "".join(
                    f"""
                    <tr>
                      <td>{escape(criterion.upper())}</td>
                      <td><input type="number" name="c__{criterion}" min="{MIN_SCORE:g}" max="{MAX_SCORE:g}"
                                 step="{SCORE_STEP:g}" value="0" required /></td>
                    </tr>
                    """
                    for criterion in criteria_for(contestant.category)
                )
                score_form = f"""
                <div class="card">
                  <p>Judge: <b>{escape(judge.name)}</b> | Contestant: <b>{escape(contestant.name)}</b>
                     | Category: <span class="pill">{escape(category_label(contestant.category))}</span></p>
                  <form method="post" action="{Module.EVALUATION.path}">
                    <input type="hidden" name="judge_id" value="{judge.id}" />
                    <input type="hidden" name="contestant_id" value="{contestant.id}" />
                    <table>
                      <thead><tr><th>Criterion</th><th>Score</th></tr></thead>
                      <tbody>{inputs}</tbody>
                    </table>
                    <button type="submit" style="margin-top:12px;">Save Evaluation</button>
                  </form>
                </div>
                """

        restrictions = restrictions_by_judge(store.evaluations)
        if restrictions:
            done = "".join(
                f"<p><b>{escape(name)}:</b> "
                + ", ".join(f"{escape(c)} - {escape(category_label(cat))}" for c, cat in pairs)
                + "</p>"
                for name, pairs in restrictions.items()
            )
        else:
            done = '<p class="muted">No evaluations recorded yet.</p>'

        body = f"""
        <div class="card">
          <form method="get" action="{Module.EVALUATION.path}">
            <div class="row">
              <select name="judge_id">{judge_opts}</select>
              <select name="contestant_id">{contestant_opts}</select>
            </div>
            <button type="submit">Select</button>
          </form>
        </div>
        {score_form}
        <div class="card">
          <h3>Evaluations Made</h3>
          {done}
        </div>
        """
        return render("Evaluation", body)

    @app.post(Module.EVALUATION.path)
    async def submit_evaluation(request: Request, judge_id: str = Form(""), contestant_id: str = Form("")):
        form = await request.form()
        evaluation = await run_in_threadpool(
            scoring().recorder.submit, judge_id, contestant_id, parse_criteria_form(form)
        )
        if evaluation is None:
            query = urlencode({"judge_id": judge_id, "contestant_id": contestant_id})
            return redirect(f"{Module.EVALUATION.path}?{query}")
        return redirect(Module.EVALUATION.path)

    # -----------------------
    # Routes: Results
    # -----------------------
    def results_page(category: str = ""):
        store = scoring().store
        results = consolidate(store.evaluations, category or None)
        metrics = project(results).display()

        rows = ""
        for rank, r in enumerate(results, start=1):
            rows += (
                f"<tr><td>#{rank}</td><td>{escape(r.contestant)}</td>"
                f"<td>{escape(category_label(r.category))}</td>"
                f"<td>{r.aggregate_score:.2f} <span class=\"muted\">({r.evaluation_count} evaluations)</span></td>"
                f"<td>{r.average_score:.2f}</td><td>{escape(', '.join(r.judges))}</td>"
                f"<td>{r.last_evaluated_at.date().isoformat()}</td></tr>"
            )
        if not rows:
            rows = '<tr><td colspan="7" class="muted">No evaluations available.</td></tr>'

        detail_rows = ""
        for r in alphabetical(results):
            averages = criteria_averages(store.evaluations, r.contestant, r.category)
            breakdown = ", ".join(f"{c.upper()}: {v:.2f}" for c, v in averages.items())
            detail_rows += (
                f"<tr><td>{escape(r.contestant)}</td><td>{escape(category_label(r.category))}</td>"
                f"<td>{escape(breakdown)}</td><td>{r.evaluation_count} ({len(r.judges)} judges)</td>"
                f'<td><a href="/results/breakdown?{escape(urlencode({"contestant": r.contestant, "category": r.category}))}">'
                f"Breakdown</a></td></tr>"
            )
        if not detail_rows:
            detail_rows = '<tr><td colspan="5" class="muted">No evaluations available.</td></tr>'

        body = f"""
        <div class="card">
          <form method="get" action="{Module.RESULTS.path}">
            <div class="row">
              <select name="category">{category_options(category, blank="All categories")}</select>
              <button type="submit">Filter</button>
            </div>
          </form>
          <p><a href="/results/export.csv?{escape(urlencode({"category": category}))}">Download Results CSV</a></p>
        </div>

        <div class="card">
          <p>
            <span class="pill">Average {metrics["overall_average"]}</span>
            <span class="pill">Top {metrics["top_score"]}</span>
            <span class="pill">{metrics["total_consolidated_entries"]} entries</span>
            <span class="pill">{metrics["distinct_category_count"]} categories</span>
          </p>
        </div>

        <div class="card">
          <h2>Leaderboard</h2>
          <p class="muted">Aggregate is the sum of every evaluation; compare contestants by the average per evaluation.
             Ties are ordered by contestant name.</p>
          <table>
            <thead><tr><th>Rank</th><th>Contestant</th><th>Category</th><th>Aggregate</th>
                       <th>Average per evaluation</th><th>Judges</th><th>Last evaluated</th></tr></thead>
            <tbody>{rows}</tbody>
          </table>
        </div>

        <div class="card">
          <h3>Scores by Criterion</h3>
          <table>
            <thead><tr><th>Contestant</th><th>Category</th><th>Criterion averages</th><th>Evaluations</th><th></th></tr></thead>
            <tbody>{detail_rows}</tbody>
          </table>
        </div>
        """
        return render("Results", body)

    @app.get("/results/breakdown", response_class=HTMLResponse)
    def results_breakdown(contestant: str, category: str):
        state = scoring()
        history = evaluation_history(state.store.evaluations, contestant, category)
        if not history:
            state.notifier.notify("No evaluations to show", Severity.INFO)
            return redirect(Module.RESULTS.path)

        averages = criteria_averages(state.store.evaluations, contestant, category)
        average_total = sum(e.total_score for e in history) / len(history)
        criteria_rows = "".join(
            f"<tr><td>{escape(c.upper())}</td><td>{v:.2f}/{MAX_SCORE:g}</td></tr>" for c, v in averages.items()
        )
        history_rows = "".join(
            f"<tr><td>{escape(e.judge_name)}</td><td>{e.total_score:.2f}</td>"
            f"<td>{e.timestamp.date().isoformat()}</td>"
            f"<td>{escape(', '.join(f'{c}: {v:g}' for c, v in e.criteria_scores.items()))}</td></tr>"
            for e in history
        )
        body = f"""
        <div class="card">
          <p><a href="{Module.RESULTS.path}">&larr; Back to Results</a></p>
          <h2>{escape(contestant)}</h2>
          <p>Category: <span class="pill">{escape(category_label(category))}</span></p>
          <p>Average score: <b>{average_total:.2f}</b> over {len(history)} evaluations</p>
        </div>
        <div class="card">
          <h3>Average per Criterion</h3>
          <table><tbody>{criteria_rows}</tbody></table>
        </div>
        <div class="card">
          <h3>Evaluation History</h3>
          <table>
            <thead><tr><th>Judge</th><th>Score</th><th>Date</th><th>Criteria</th></tr></thead>
            <tbody>{history_rows}</tbody>
          </table>
        </div>
        """
        return render("Score Breakdown", body)

    @app.get("/results/export.csv")
    def export_results(category: str = ""):
        results = consolidate(scoring().store.evaluations, category or None)
        if not results:
            scoring().notifier.notify("No scores to export", Severity.WARNING)

        buf = StringIO()
        leaderboard_frame(results).to_csv(buf, index=False)
        return Response(
            content=buf.getvalue(),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="scores_{utcnow().date().isoformat()}.csv"'},
        )

    # -----------------------
    # Routes: Administration
    # -----------------------
    def admin_page():
        store = scoring().store
        counts = store_summary(store)

        def delete_form(action: str) -> str:
            return (
                f'<form class="inline" method="post" action="{action}">'
                f"{admin_password_input()}<button type=\"submit\">Delete</button></form>"
            )

        contestant_rows = "".join(
            f"<tr><td>{escape(c.name)}</td><td>{escape(c.email)}</td><td>{escape(category_label(c.category))}</td>"
            f"<td>{escape(c.phone)}</td><td>{delete_form(f'/admin/contestant/{c.id}/delete')}</td></tr>"
            for c in store.contestants
        ) or '<tr><td colspan="5" class="muted">No contestants registered.</td></tr>'

        judge_rows = "".join(
            f"<tr><td>{escape(j.name)}</td><td>{escape(j.email)}</td><td>{j.years_experience} years</td>"
            f"<td>{escape(j.specialty)}</td><td>{delete_form(f'/admin/judge/{j.id}/delete')}</td></tr>"
            for j in store.judges
        ) or '<tr><td colspan="5" class="muted">No judges registered.</td></tr>'

        evaluation_rows = "".join(
            f"<tr><td>{escape(e.judge_name)}</td><td>{escape(e.contestant_name)}</td>"
            f"<td>{escape(category_label(e.category))}</td><td>{e.total_score:.2f}</td>"
            f"<td>{e.timestamp.date().isoformat()}</td>"
            f"<td>{delete_form(f'/admin/evaluation/{e.id}/delete')}</td></tr>"
            for e in store.evaluations
        ) or '<tr><td colspan="6" class="muted">No evaluations recorded.</td></tr>'

        body = f"""
        <div class="card">
          <p>
            <span class="pill">{counts.contestants} contestants</span>
            <span class="pill">{counts.judges} judges</span>
            <span class="pill">{counts.evaluations} evaluations</span>
            <span class="pill">Average {counts.average_total:.2f}</span>
          </p>
        </div>

        <div class="card">
          <h3>Contestants</h3>
          <table>
            <thead><tr><th>Name</th><th>Email</th><th>Category</th><th>Phone</th><th></th></tr></thead>
            <tbody>{contestant_rows}</tbody>
          </table>
          <p class="muted">Deleting a contestant also deletes their evaluations.</p>
        </div>

        <div class="card">
          <h3>Judges</h3>
          <table>
            <thead><tr><th>Name</th><th>Email</th><th>Experience</th><th>Specialty</th><th></th></tr></thead>
            <tbody>{judge_rows}</tbody>
          </table>
          <p class="muted">Deleting a judge also deletes their evaluations.</p>
        </div>

        <div class="card">
          <h3>Evaluations</h3>
          <table>
            <thead><tr><th>Judge</th><th>Contestant</th><th>Category</th><th>Score</th><th>Date</th><th></th></tr></thead>
            <tbody>{evaluation_rows}</tbody>
          </table>
        </div>

        <div class="card">
          <h3>Controls</h3>
          <form method="get" action="/admin/export.json" style="margin-bottom:12px;">
            <div class="row">{admin_password_input()}</div>
            <button type="submit">Export Data (JSON)</button>
          </form>
          <form method="post" action="/admin/reset">
            <div class="row">{admin_password_input()}</div>
            <button type="submit" class="danger">Reset Everything</button>
          </form>
          <p class="muted">Reset removes every contestant, judge and evaluation.</p>
        </div>
        """
        return render("Administration", body)

    @app.post("/admin/contestant/{contestant_id}/delete")
    def admin_delete_contestant(contestant_id: str, admin_password: str = Form(...)):
        require_admin(admin_password)
        scoring().store.delete_contestant(contestant_id)
        return redirect(Module.ADMINISTRATION.path)

    @app.post("/admin/judge/{judge_id}/delete")
    def admin_delete_judge(judge_id: str, admin_password: str = Form(...)):
        require_admin(admin_password)
        scoring().store.delete_judge(judge_id)
        return redirect(Module.ADMINISTRATION.path)

    @app.post("/admin/evaluation/{evaluation_id}/delete")
    def admin_delete_evaluation(evaluation_id: str, admin_password: str = Form(...)):
        require_admin(admin_password)
        scoring().store.delete_evaluation(evaluation_id)
        return redirect(Module.ADMINISTRATION.path)

    @app.post("/admin/reset")
    def admin_reset(admin_password: str = Form(...)):
        require_admin(admin_password)
        scoring().store.reset()
        return redirect(Module.ADMINISTRATION.path)

    @app.get("/admin/export.json")
    def admin_export(admin_password: str):
        require_admin(admin_password)
        payload = {**scoring().store.snapshot().model_dump(mode="json"), "exported_at": utcnow().isoformat()}
        return JSONResponse(
            content=payload,
            headers={"Content-Disposition": f'attachment; filename="scoring_export_{utcnow().date().isoformat()}.json"'},
        )

    # -----------------------
    # Routes: API
    # -----------------------
    @app.get("/api/health")
    def health():
        return {"status": "ok", "app": settings.APP_NAME, "version": __version__}

    @app.get("/api/data")
    def api_data():
        return scoring().store.snapshot().model_dump(mode="json")

    module_pages: Dict[Module, Callable] = {
        Module.REGISTRATION: registration_page,
        Module.EVALUATION: evaluation_page,
        Module.RESULTS: results_page,
        Module.ADMINISTRATION: admin_page,
    }
    missing = set(Module) - set(module_pages)
    if missing:
        raise RuntimeError(f"No page for modules: {sorted(m.value for m in missing)}")
    for module, handler in module_pages.items():
        app.add_api_route(module.path, handler, methods=["GET"], response_class=HTMLResponse, name=module.value)

    app.state.module_pages = module_pages
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("event_scoring.main:app", host="0.0.0.0", port=settings.PORT)
