# -*- coding: utf-8 -*-
from datetime import date

from common.models import BorrowRequest, BorrowRequestStatus, can_transition


def test_forward_transitions_allowed():
    assert can_transition(BorrowRequestStatus.PENDING, BorrowRequestStatus.APPROVED)
    assert can_transition(BorrowRequestStatus.PENDING, BorrowRequestStatus.REJECTED)
    assert can_transition(BorrowRequestStatus.APPROVED, BorrowRequestStatus.BORROWED)
    assert can_transition(BorrowRequestStatus.BORROWED, BorrowRequestStatus.RETURNED)


def test_terminal_and_backward_transitions_rejected():
    for target in BorrowRequestStatus:
        assert not can_transition(BorrowRequestStatus.REJECTED, target)
        assert not can_transition(BorrowRequestStatus.RETURNED, target)
    assert not can_transition(BorrowRequestStatus.PENDING, BorrowRequestStatus.BORROWED)
    assert not can_transition(BorrowRequestStatus.APPROVED, BorrowRequestStatus.REJECTED)
    assert not can_transition(BorrowRequestStatus.BORROWED, BorrowRequestStatus.APPROVED)


def test_days_until_due_and_overdue():
    request = BorrowRequest(id='r1', book_id='default', book_name='档案借阅',
                            open_id='openid-alice', borrow_days=7,
                            status=BorrowRequestStatus.BORROWED, return_date=date(2024, 5, 10))
    assert request.days_until_due(date(2024, 5, 7)) == 3
    assert request.days_until_due(date(2024, 5, 12)) == -2
    assert not request.is_overdue(date(2024, 5, 10))
    assert request.is_overdue(date(2024, 5, 11))

    request.status = BorrowRequestStatus.RETURNED
    assert not request.is_overdue(date(2024, 5, 11))


def test_to_dict_uses_status_label():
    request = BorrowRequest(id='r1', book_id='default', book_name='档案借阅',
                            open_id='openid-alice', borrow_days=7)
    data = request.to_dict()
    assert data['status'] == 'pending'
    assert data['statusText'] == '待审核'
    assert data['returnDate'] == ''
    assert data['createdAt'].endswith('+08:00')
