import marimo

__generated_with = "0.13.10"
app = marimo.App(width="full", app_title="Medfly")


@app.cell
def _imports():
    import marimo as mo

    return (mo,)


# ---------------------------------------------------------------------------
# Bootstrap: settings, gateway, stores
# ---------------------------------------------------------------------------


@app.cell
def _setup():
    import sys
    from pathlib import Path

    ROOT = Path(__file__).parent.parent
    SRC = ROOT / "src"

    if str(SRC) not in sys.path:
        sys.path.insert(0, str(SRC))

    from medfly.auth import PasswordAdminGate
    from medfly.config import Settings
    from medfly.context import EditorialContext, PlatformContext
    from medfly.gateway import open_gateway
    from medfly.log import configure_logging

    configure_logging()
    settings = Settings.load()
    if not settings.uses_supabase and settings.seed_path is None:
        settings.seed_path = ROOT / "data" / "seed.yaml"

    gateway = open_gateway(settings)
    platform = PlatformContext(gateway, search_limit=settings.search_limit)
    platform.start()
    editorial = EditorialContext(gateway)
    editorial.start()
    gate = PasswordAdminGate(settings.admin_password, settings.admin_state_path)
    return editorial, gate, platform


# ---------------------------------------------------------------------------
# Reactive state
# ---------------------------------------------------------------------------


@app.cell
def _state(mo):
    get_slug, set_slug = mo.state("")
    # Bumped after every admin write so dependent cells re-read the stores
    get_revision, set_revision = mo.state(0)
    return get_revision, get_slug, set_revision, set_slug


# ---------------------------------------------------------------------------
# Browse tab
# ---------------------------------------------------------------------------


@app.cell
def _browse_controls(mo, platform):
    from medfly.entities import Difficulty
    from medfly.search import SortOrder

    _state = platform.state
    year_select = mo.ui.dropdown(
        options={"All years": "all", **{y.year_name: y.id for y in _state.years}},
        value="All years",
        label="Year",
    )
    unit_select = mo.ui.dropdown(
        options={"All units": "all", **{f"{u.unit_code} {u.unit_name}": u.id for u in _state.units}},
        value="All units",
        label="Unit",
    )
    lecturer_select = mo.ui.dropdown(
        options={"All lecturers": "all", **{lc.display_name: lc.id for lc in _state.lecturers if lc.is_active}},
        value="All lecturers",
        label="Lecturer",
    )
    difficulty_select = mo.ui.dropdown(
        options={"Any difficulty": "all", **{d.value: d.value for d in Difficulty}},
        value="Any difficulty",
        label="Difficulty",
    )
    search_input = mo.ui.text(placeholder="Search notes…", label="", full_width=True)
    sort_select = mo.ui.dropdown(
        options=[o.value for o in SortOrder], value=SortOrder.NEWEST.value, label="Sort"
    )
    return difficulty_select, lecturer_select, search_input, sort_select, unit_select, year_select


@app.cell
def _browse_tab(
    mo,
    platform,
    get_revision,
    set_slug,
    search_input,
    year_select,
    unit_select,
    lecturer_select,
    difficulty_select,
    sort_select,
):
    from medfly.search import SearchFilters, sort_listing

    get_revision()
    filters = SearchFilters(
        year_id=year_select.value,
        unit_id=unit_select.value,
        lecturer_id=lecturer_select.value,
        difficulty_level=difficulty_select.value,
    )
    results = sort_listing(platform.search.search(search_input.value, filters), sort_select.value)

    def _note_button(note):
        unit = note.unit.unit_code if note.unit else "—"
        return mo.ui.button(
            label=f"{note.title}  ·  {unit}  ·  {note.estimated_read_time} min",
            on_click=lambda _, s=note.slug: set_slug(s),
            kind="neutral",
            full_width=True,
        )

    errors = platform.state.errors
    browse_panel = mo.vstack(
        [
            search_input,
            mo.hstack([year_select, unit_select, lecturer_select, difficulty_select, sort_select], gap="8px"),
            mo.callout(mo.md("\n".join(f"- {m}" for m in errors.values())), kind="danger") if errors else mo.md(""),
            mo.md(f"**{len(results)}** notes"),
            *[_note_button(n) for n in results],
        ],
        gap="4px",
    )
    return (browse_panel,)


# ---------------------------------------------------------------------------
# Note tab
# ---------------------------------------------------------------------------


@app.cell
def _note_tab(mo, platform, get_slug, set_slug):
    slug = get_slug()
    opened = platform.open_note(slug) if slug else None

    if opened is None:
        note_panel = mo.md("_Pick a note from the Browse tab._")
    else:
        note, related = opened
        meta = [
            note.unit.unit_name if note.unit else None,
            note.year.year_name if note.year else None,
            note.lecturer.display_name if note.lecturer else None,
            note.difficulty_level.value if note.difficulty_level else None,
            f"{note.estimated_read_time} min read",
        ]
        tags_md = " ".join(f"`#{t.tag_name}`" for t in note.tags)
        related_buttons = [
            mo.ui.button(label=r.title, on_click=lambda _, s=r.slug: set_slug(s), kind="ghost")
            for r in related
        ]
        note_panel = mo.vstack(
            [
                mo.md(f"# {note.title}"),
                mo.md("  ·  ".join(m for m in meta if m)),
                mo.md(tags_md) if note.tags else mo.md(""),
                mo.divider(),
                mo.Html(note.content),
                mo.md("---\n### Related notes") if related else mo.md(""),
                *related_buttons,
            ]
        )
    return (note_panel,)


# ---------------------------------------------------------------------------
# Blog tab
# ---------------------------------------------------------------------------


@app.cell
def _blog_controls(mo, editorial):
    from medfly.search import SortOrder

    blog_search = mo.ui.text(placeholder="Search posts…", label="", full_width=True)
    blog_category = mo.ui.dropdown(
        options={"All categories": "all", **{c.name: c.slug for c in editorial.state.categories}},
        value="All categories",
        label="Category",
    )
    blog_sort = mo.ui.dropdown(
        options=[SortOrder.NEWEST.value, SortOrder.OLDEST.value, SortOrder.ALPHABETICAL.value],
        value=SortOrder.NEWEST.value,
        label="Sort",
    )
    return blog_category, blog_search, blog_sort


@app.cell
def _blog_tab(mo, editorial, get_revision, blog_search, blog_category, blog_sort):
    from medfly.browse import featured_and_recent
    from medfly.search import filter_listing, sort_listing

    get_revision()
    featured, recent = featured_and_recent(editorial.state)
    posts = sort_listing(
        filter_listing(editorial.state.published_posts, blog_search.value, blog_category.value),
        blog_sort.value,
    )

    def _card(post):
        category = f"_{post.category.name}_ · " if post.category else ""
        return mo.md(f"### {post.title}\n{category}{post.excerpt}")

    blog_panel = mo.vstack(
        [
            mo.callout(_card(featured), kind="info") if featured else mo.md("_No posts yet._"),
            mo.md(f"Recent: {', '.join(p.title for p in recent)}") if recent else mo.md(""),
            mo.divider(),
            mo.hstack([blog_search, blog_category, blog_sort], gap="8px"),
            *[_card(p) for p in posts],
        ],
        gap="6px",
    )
    return (blog_panel,)


# ---------------------------------------------------------------------------
# Admin tab
# ---------------------------------------------------------------------------


@app.cell
def _admin_forms(mo, platform, editorial):
    from medfly.entities import Difficulty

    login_form = mo.ui.text(kind="password", label="Admin password").form(submit_button_label="Unlock")

    note_form = (
        mo.md(
            """
            **New note**

            {title}

            {excerpt}

            {content}

            {unit} {difficulty} {published}
            """
        )
        .batch(
            title=mo.ui.text(label="Title", full_width=True),
            excerpt=mo.ui.text(label="Excerpt (blank: taken from the content)", full_width=True),
            content=mo.ui.text_area(label="Content (HTML)", full_width=True, rows=6),
            unit=mo.ui.dropdown(options={u.unit_code: u.id for u in platform.state.units}, label="Unit"),
            difficulty=mo.ui.dropdown(
                options=[d.value for d in Difficulty], value=Difficulty.INTERMEDIATE.value, label="Difficulty"
            ),
            published=mo.ui.checkbox(label="Publish"),
        )
        .form(submit_button_label="Create note", clear_on_submit=True)
    )

    post_form = (
        mo.md(
            """
            **New post**

            {title}

            {excerpt}

            {content}

            {category} {published}
            """
        )
        .batch(
            title=mo.ui.text(label="Title", full_width=True),
            excerpt=mo.ui.text(label="Excerpt (blank: taken from the content)", full_width=True),
            content=mo.ui.text_area(label="Content (HTML)", full_width=True, rows=6),
            category=mo.ui.dropdown(options={c.name: c.id for c in editorial.state.categories}, label="Category"),
            published=mo.ui.checkbox(label="Publish"),
        )
        .form(submit_button_label="Create post", clear_on_submit=True)
    )
    return login_form, note_form, post_form


@app.cell
def _admin_writes(mo, platform, editorial, note_form, post_form, set_revision):
    from medfly.errors import WriteError
    from medfly.text import make_excerpt

    write_feedback = mo.md("")

    if note_form.value:
        _values = note_form.value
        _unit = platform.state.units.get(_values["unit"]) if _values["unit"] else None
        try:
            _note = platform.commands.notes.create(
                {
                    "title": _values["title"],
                    "excerpt": _values["excerpt"] or make_excerpt(_values["content"] or ""),
                    "content": _values["content"],
                    "unit_id": _unit.id if _unit else None,
                    "year_id": _unit.year_id if _unit else None,
                    "lecturer_id": _unit.lecturer_id if _unit else None,
                    "difficulty_level": _values["difficulty"],
                    "is_published": _values["published"],
                }
            )
        except WriteError as exc:
            write_feedback = mo.callout(mo.md(f"Could not create note: {exc}"), kind="danger")
        else:
            write_feedback = mo.callout(mo.md(f"Created **{_note.title}** (`{_note.slug}`)"), kind="success")
            set_revision(lambda r: r + 1)

    if post_form.value:
        _values = post_form.value
        try:
            _post = editorial.commands.posts.create(
                {
                    "title": _values["title"],
                    "excerpt": _values["excerpt"] or make_excerpt(_values["content"] or ""),
                    "content": _values["content"],
                    "category_id": _values["category"],
                    "published": _values["published"],
                }
            )
        except WriteError as exc:
            write_feedback = mo.callout(mo.md(f"Could not create post: {exc}"), kind="danger")
        else:
            write_feedback = mo.callout(mo.md(f"Created **{_post.title}**"), kind="success")
            set_revision(lambda r: r + 1)
    return (write_feedback,)


@app.cell
def _admin_tab(mo, platform, gate, get_revision, login_form, note_form, post_form, write_feedback):
    from medfly.charts import difficulty_chart, popular_notes_chart
    from medfly.db import ContentDB

    get_revision()
    if login_form.value:
        gate.login(login_form.value)

    if not gate.is_authorized():
        admin_panel = mo.vstack(
            [
                mo.md("## Admin"),
                login_form,
                mo.callout(mo.md("Wrong password."), kind="warn") if login_form.value else mo.md(""),
            ]
        )
    else:
        db = ContentDB(platform.state)
        stats = db.dashboard_stats()
        cards = mo.hstack(
            [mo.stat(value=str(v), label=k.replace("_", " ")) for k, v in stats.items()],
            gap="8px",
            wrap=True,
        )
        admin_panel = mo.vstack(
            [
                mo.md("## Dashboard"),
                cards,
                mo.hstack(
                    [mo.ui.altair_chart(difficulty_chart(db)), mo.ui.altair_chart(popular_notes_chart(db))],
                    gap="12px",
                ),
                mo.accordion(
                    {
                        "Notes": mo.ui.table(db.notes_table()),
                        "Units": mo.ui.table(db.unit_summary()),
                        "Lecturers": mo.ui.table(db.lecturer_summary()),
                        "Create": mo.vstack([write_feedback, note_form, post_form]),
                    }
                ),
            ]
        )
    return (admin_panel,)


# ---------------------------------------------------------------------------
# Main layout
# ---------------------------------------------------------------------------


@app.cell
def _main_layout(mo, browse_panel, note_panel, blog_panel, admin_panel):
    layout = mo.vstack(
        [
            mo.md("# Medfly"),
            mo.ui.tabs(
                {
                    "Browse": browse_panel,
                    "Note": note_panel,
                    "Blog": blog_panel,
                    "Admin": admin_panel,
                }
            ),
        ],
        gap="4px",
    )
    return (layout,)


@app.cell
def _render(layout):
    layout  # noqa: B018  marimo displays the last expression as cell output
    return


if __name__ == "__main__":
    app.run()
