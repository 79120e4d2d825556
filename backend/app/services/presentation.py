"""
QuickNotes Backend — Presentation
===================================

What:  Turns workflow state into the notes screen.
How:   `build_view` is a pure function from (WorkflowState, Identity) to the
       NotesView model. `render_page` and `render_sign_in` produce escaped
       HTML from a view; they read nothing else.
Who:   GET / renders HTML; GET /api/view returns the NotesView as JSON.

Every user-supplied string goes through html.escape before it reaches the
page. Controls that would start a workflow are disabled while busy.
"""

from html import escape
from typing import Optional

from app.schemas.auth import Identity
from app.schemas.view import (
    FormView,
    HeaderView,
    ListView,
    NoteCardView,
    NotesView,
)
from app.services.notes_workflow import WorkflowState

EMPTY_LIST_MESSAGE = "No notes yet."


def build_view(state: WorkflowState, user: Identity, notice: Optional[str] = None) -> NotesView:
    """Project workflow state onto the screen. Does not mutate `state`."""
    busy = state.busy
    return NotesView(
        header=HeaderView(username=user.username),
        form=FormView(
            title=state.draft_title,
            content=state.draft_content,
            selected_file=state.pending_file.filename if state.pending_file else None,
            save_disabled=busy,
            clear_disabled=busy,
        ),
        listing=ListView(
            refresh_disabled=busy,
            empty_message=EMPTY_LIST_MESSAGE if not state.notes else None,
            notes=[
                NoteCardView(
                    id=note.id,
                    title=note.title,
                    content=note.content,
                    image_url=note.image_url,
                    delete_disabled=busy,
                    confirming_delete=note.id == state.pending_delete_id,
                )
                for note in state.notes
            ],
        ),
        busy=busy,
        notice=notice,
    )


# ══════════════════════════════════════════════════════════════════════════
# HTML rendering
# ══════════════════════════════════════════════════════════════════════════

_STYLE = """
body { font-family: system-ui, sans-serif; margin: 0; }
main { padding: 1rem; max-width: 840px; margin: 0 auto; }
header { display: flex; justify-content: space-between; align-items: center; }
section.form { margin-top: 24px; padding: 16px; border: 1px solid #ddd; border-radius: 8px; }
.fields { display: grid; gap: 8px; }
.actions { display: flex; gap: 8px; }
.list-header { display: flex; align-items: center; gap: 12px; margin-top: 24px; }
.grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 12px; margin-top: 12px; }
article { border: 1px solid #eee; border-radius: 8px; padding: 12px; }
article p { margin: 0 0 8px; white-space: pre-wrap; }
article img { width: 100%; height: 160px; object-fit: cover; border-radius: 6px; margin-bottom: 8px; }
.notice { margin-top: 16px; padding: 8px 12px; background: #fff4e5; border: 1px solid #f0c36d; border-radius: 6px; }
.empty { opacity: 0.7; }
"""


def _disabled(flag: bool) -> str:
    return " disabled" if flag else ""


def _document(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n"
        '<html lang="en">\n'
        "<head>\n"
        '<meta charset="utf-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1">\n'
        f"<title>{escape(title)}</title>\n"
        f"<style>{_STYLE}</style>\n"
        "</head>\n"
        f"<body>\n{body}\n</body>\n"
        "</html>\n"
    )


def _render_notice(notice: Optional[str]) -> str:
    if not notice:
        return ""
    return f'<div class="notice" role="alert">{escape(notice)}</div>'


def _render_card(card: NoteCardView) -> str:
    parts = [
        f'<article id="note-{escape(card.id)}">',
        f"<h3>{escape(card.title)}</h3>",
        f"<p>{escape(card.content)}</p>",
    ]
    if card.image_url:
        parts.append(f'<img src="{escape(card.image_url)}" alt="">')

    if card.confirming_delete:
        parts.append(
            "<div>Delete this note?</div>"
            '<div class="actions">'
            '<form method="post" action="/delete/confirm">'
            f'<button type="submit"{_disabled(card.delete_disabled)}>Yes, delete</button>'
            "</form>"
            '<form method="post" action="/delete/cancel">'
            '<button type="submit">Cancel</button>'
            "</form>"
            "</div>"
        )
    else:
        parts.append(
            f'<form method="post" action="/notes/{escape(card.id)}/delete">'
            f'<button type="submit"{_disabled(card.delete_disabled)}>Delete</button>'
            "</form>"
        )
    parts.append("</article>")
    return "".join(parts)


def render_page(view: NotesView) -> str:
    """Render the signed-in notes screen."""
    form = view.form
    selected = (
        f"<small>Selected: {escape(form.selected_file)}</small>"
        if form.selected_file
        else ""
    )
    if view.listing.notes:
        listing = '<div class="grid">' + "".join(
            _render_card(card) for card in view.listing.notes
        ) + "</div>"
    else:
        listing = f'<p class="empty">{escape(view.listing.empty_message or EMPTY_LIST_MESSAGE)}</p>'

    body = f"""<main>
<header>
<div>
<h1 style="margin: 0">Notes</h1>
<small>Signed in as <strong>{escape(view.header.username)}</strong></small>
</div>
<form method="post" action="/sign-out"><button type="submit">Sign Out</button></form>
</header>
{_render_notice(view.notice)}
<section class="form">
<h2 style="margin-top: 0">Create a Note</h2>
<form method="post" action="/notes" enctype="multipart/form-data" class="fields">
<input name="title" placeholder="Title" value="{escape(form.title)}">
<textarea name="content" placeholder="Content" rows="4">{escape(form.content)}</textarea>
<input type="file" name="file" accept="{escape(form.accept)}">
{selected}
<div class="actions">
<button type="submit"{_disabled(form.save_disabled)}>Save Note</button>
<button type="submit" formaction="/notes/clear" formnovalidate{_disabled(form.clear_disabled)}>Clear</button>
</div>
</form>
</section>
<section>
<div class="list-header">
<h2 style="margin: 0">Your Notes</h2>
<form method="post" action="/refresh"><button type="submit"{_disabled(view.listing.refresh_disabled)}>Refresh</button></form>
</div>
{listing}
</section>
</main>"""
    return _document("Notes", body)


def render_sign_in(notice: Optional[str] = None, username: str = "") -> str:
    """Render the unauthenticated view: sign-in and create-account forms."""
    body = f"""<main>
<h1>Notes</h1>
{_render_notice(notice)}
<section class="form">
<h2 style="margin-top: 0">Sign In</h2>
<form method="post" action="/sign-in" class="fields">
<input name="username" placeholder="Username" value="{escape(username)}" autocomplete="username">
<input name="password" type="password" placeholder="Password" autocomplete="current-password">
<div class="actions"><button type="submit">Sign In</button></div>
</form>
</section>
<section class="form">
<h2 style="margin-top: 0">Create Account</h2>
<form method="post" action="/sign-up" class="fields">
<input name="username" placeholder="Username" autocomplete="username">
<input name="password" type="password" placeholder="Password (8+ characters)" autocomplete="new-password">
<div class="actions"><button type="submit">Create Account</button></div>
</form>
</section>
</main>"""
    return _document("Sign in · Notes", body)
