"""Comment threads: authorization, internal visibility, pagination and fan-out."""
import pytest

from models import Comment, ComplaintActivity, Notification
from utils.comments import add_comment, list_comments
from utils.errors import Forbidden, NotFound, ValidationFailed
from utils.lifecycle import complaint_activity, soft_delete_complaint


@pytest.fixture
def assigned(make, people):
    return make.complaint(people["reporter"], assignee=people["staff"], department_id=people["department_id"])


def _inbox(user_id):
    return Notification.query.filter_by(user_id=user_id).all()


class TestAddComment:
    def test_reporter_comment_notifies_assignee_only(self, ctx, people, assigned):
        comment = add_comment(people["reporter"], assigned, "hi")

        assert comment.is_internal is False
        assert _inbox(people["reporter"].id) == []
        [notice] = _inbox(people["staff"].id)
        assert notice.type == "COMMENT_ADDED"
        assert notice.complaint_id == assigned

    def test_admin_comment_notifies_reporter_and_assignee(self, ctx, people, assigned):
        add_comment(people["admin"], assigned, "Escalated to the night crew")
        assert len(_inbox(people["reporter"].id)) == 1
        assert len(_inbox(people["staff"].id)) == 1

    def test_internal_comment_is_hidden_from_reporter_and_not_announced(self, ctx, people, assigned):
        add_comment(people["staff"], assigned, "note", is_internal=True)

        assert list_comments(people["reporter"], assigned).comments == []
        [visible] = list_comments(people["staff"], assigned).comments
        assert visible.is_internal is True
        assert Notification.query.count() == 0

    def test_citizen_internal_flag_is_downgraded(self, ctx, people, assigned):
        comment = add_comment(people["reporter"], assigned, "Please hurry", is_internal=True)

        assert comment.is_internal is False
        activity = ComplaintActivity.query.filter_by(complaint_id=assigned, action="COMMENT_ADDED").one()
        assert activity.new_value == "public"

    def test_unrelated_citizen_is_forbidden_and_nothing_is_written(self, ctx, people, assigned):
        with pytest.raises(Forbidden):
            add_comment(people["other"], assigned, "me too", is_internal=False)

        assert Comment.query.count() == 0
        assert ComplaintActivity.query.count() == 0
        assert Notification.query.count() == 0

    def test_department_staff_without_assignment_cannot_comment(self, ctx, people, assigned):
        with pytest.raises(Forbidden):
            add_comment(people["colleague"], assigned, "Looking into it")

    @pytest.mark.parametrize("content", [None, "", "   ", "<p></p>"])
    def test_blank_content_is_rejected(self, ctx, people, assigned, content):
        with pytest.raises(ValidationFailed):
            add_comment(people["reporter"], assigned, content)

    def test_overlong_content_is_rejected(self, ctx, people, assigned):
        with pytest.raises(ValidationFailed):
            add_comment(people["reporter"], assigned, "x" * 2001)

    def test_content_is_stripped_of_markup(self, ctx, people, assigned):
        comment = add_comment(people["reporter"], assigned, "  <i>Still</i> leaking  ")
        assert comment.content == "Still leaking"

    def test_escaped_markup_is_stored_as_entities(self, ctx, people, assigned):
        comment = add_comment(people["reporter"], assigned, "use &lt;b&gt; tags")

        assert comment.content == "use &lt;b&gt; tags"
        assert "<" not in Comment.query.one().content

    def test_bare_ampersand_is_stored_escaped(self, ctx, people, assigned):
        comment = add_comment(people["reporter"], assigned, "Tom & Jerry <b>x</b>")
        assert comment.content == "Tom &amp; Jerry x"

    def test_deleted_complaint_is_not_found(self, ctx, people, assigned):
        soft_delete_complaint(people["admin"], assigned)
        with pytest.raises(NotFound):
            add_comment(people["reporter"], assigned, "Hello?")


class TestListComments:
    def test_pages_oldest_first(self, ctx, people, assigned):
        for text in ("first", "second", "third"):
            add_comment(people["reporter"], assigned, text)

        page = list_comments(people["reporter"], assigned, limit=2, offset=0)
        assert [c.content for c in page.comments] == ["first", "second"]
        assert page.total == 3
        assert page.has_more is True

        rest = list_comments(people["reporter"], assigned, limit="2", offset="2")
        assert [c.content for c in rest.comments] == ["third"]
        assert rest.to_dict()["pagination"] == {"total": 3, "limit": 2, "offset": 2, "hasMore": False}

    @pytest.mark.parametrize("limit,offset", [(0, 0), (101, 0), (10, -1), ("many", 0)])
    def test_rejects_out_of_range_bounds(self, ctx, people, assigned, limit, offset):
        with pytest.raises(ValidationFailed):
            list_comments(people["reporter"], assigned, limit=limit, offset=offset)

    def test_unrelated_citizen_cannot_read_thread(self, ctx, people, assigned):
        with pytest.raises(Forbidden):
            list_comments(people["other"], assigned)

    def test_department_colleague_does_not_see_internal_notes(self, ctx, people, assigned):
        add_comment(people["staff"], assigned, "Valve replacement ordered", is_internal=True)
        add_comment(people["reporter"], assigned, "Any news?")

        colleague_thread = list_comments(people["colleague"], assigned)
        assert [c.content for c in colleague_thread.comments] == ["Any news?"]
        assert colleague_thread.total == 1
        assert list_comments(people["admin"], assigned).total == 2
        assert list_comments(people["staff"], assigned).total == 2

        colleague_feed = complaint_activity(people["colleague"], assigned)
        assert [(a.action, a.new_value) for a in colleague_feed] == [("COMMENT_ADDED", "public")]
        admin_feed = complaint_activity(people["admin"], assigned)
        assert sorted(a.new_value for a in admin_feed) == ["internal", "public"]
