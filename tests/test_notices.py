"""
Unit tests for NoticeBoard.
"""
from live_recognition.errors import NoFaceDetected
from live_recognition.notices import NoticeBoard


class TestNoticeBoard:
    """Tests for NoticeBoard"""

    def test_post_and_list(self):
        board = NoticeBoard()
        board.success('Alice added successfully!')
        board.error('No face detected')
        notices = board.active()
        assert [n.level for n in notices] == ['success', 'error']
        assert notices[0].id < notices[1].id

    def test_report_uses_error_notice(self):
        board = NoticeBoard()
        notice = board.report(NoFaceDetected())
        assert notice.level == 'error'
        assert notice.message == 'No face detected'

    def test_dismiss_one(self):
        board = NoticeBoard()
        first = board.info('a')
        board.info('b')
        assert board.dismiss(first.id) is True
        assert board.dismiss(first.id) is False
        assert [n.message for n in board.active()] == ['b']

    def test_dismiss_all(self):
        board = NoticeBoard()
        board.info('a')
        board.info('b')
        board.dismiss_all()
        assert board.active() == []

    def test_oldest_dropped_when_full(self):
        board = NoticeBoard(max_active=2)
        for text in ('a', 'b', 'c'):
            board.info(text)
        assert [n.message for n in board.active()] == ['b', 'c']

    def test_to_dict(self):
        notice = NoticeBoard().error('Camera not ready')
        data = notice.to_dict()
        assert data['level'] == 'error'
        assert data['message'] == 'Camera not ready'
        assert set(data) == {'id', 'level', 'message', 'created_at'}
