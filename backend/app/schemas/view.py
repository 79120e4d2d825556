"""
QuickNotes Backend — View Model Schemas
=========================================

What:  The view produced by `presentation.build_view` from workflow state.
How:   Every control carries its own `disabled` flag, so both the HTML renderer
       and JSON clients draw the same screen without re-deriving rules.
Who:   Returned by GET /api/view; rendered to HTML by GET /.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class HeaderView(BaseModel):
    username: str = Field(description="Signed-in identity")
    can_sign_out: bool = True


class FormView(BaseModel):
    """The create-note form."""

    title: str = ""
    content: str = ""
    selected_file: Optional[str] = Field(
        default=None,
        description="Name of the pending attachment, if one is selected",
    )
    accept: str = Field(default="image/*", description="File picker type filter")
    save_disabled: bool = False
    clear_disabled: bool = False


class NoteCardView(BaseModel):
    id: str
    title: str
    content: str
    image_url: Optional[str] = None
    delete_disabled: bool = False
    confirming_delete: bool = Field(
        default=False,
        description="True while the delete confirmation for this card is open",
    )


class ListView(BaseModel):
    refresh_disabled: bool = False
    empty_message: Optional[str] = Field(
        default=None,
        description="Shown instead of cards when there are no notes",
    )
    notes: List[NoteCardView] = Field(default_factory=list)


class DraftUpdate(BaseModel):
    """PUT /api/draft body. Omitted fields keep their current value."""

    title: Optional[str] = Field(default=None, max_length=255)
    content: Optional[str] = None


class NotesView(BaseModel):
    """
    What:  The complete notes screen.
    Who:   GET /api/view returns it as JSON; render_page turns it into HTML.
    """

    header: HeaderView
    form: FormView
    listing: ListView
    busy: bool = False
    notice: Optional[str] = Field(
        default=None,
        description="One-shot user-visible message (validation or failure notice)",
    )
