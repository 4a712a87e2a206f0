from decimal import Decimal
from types import SimpleNamespace

import pytest

from management.models import Setting
from ResultManagement import comments
from ResultManagement.grading import competition_rank, grade_info, grading_key, is_pass, ordinal


@pytest.mark.parametrize('score, grade, point', [
    (100, 'A', 5),
    (70, 'A', 5),
    (Decimal('69.99'), 'B', 4),
    (60, 'B', 4),
    (50, 'C', 3),
    (45, 'D', 2),
    (40, 'E', 1),
    (Decimal('39.99'), 'F', 0),
    (0, 'F', 0),
])
def test_grade_boundaries(score, grade, point):
    info = grade_info(score)
    assert info['grade'] == grade
    assert info['point'] == point


@pytest.mark.django_db
def test_pass_mark_defaults_to_forty():
    assert is_pass(40)
    assert not is_pass(Decimal('39.5'))


@pytest.mark.django_db
def test_pass_mark_follows_school_setting():
    Setting.set_value('pass_mark', 50, type='integer', group='academic')
    assert not is_pass(45)
    assert is_pass(50)
    assert is_pass(45, mark=Decimal('45'))


def test_competition_rank_shares_position_for_ties():
    items = [('a', 90), ('b', 75), ('c', 90), ('d', 60)]
    ranked = competition_rank(items, key=lambda item: item[1])
    positions = {item[0]: position for position, item in ranked}
    assert positions == {'a': 1, 'c': 1, 'b': 3, 'd': 4}


def test_competition_rank_all_tied():
    ranked = competition_rank([1, 1, 1], key=lambda v: v)
    assert [position for position, _ in ranked] == [1, 1, 1]


def test_ordinal_suffixes():
    assert [ordinal(n) for n in (1, 2, 3, 4, 11, 12, 13, 21, 22, 101)] == [
        '1st', '2nd', '3rd', '4th', '11th', '12th', '13th', '21st', '22nd', '101st',
    ]


def test_grading_key_covers_scale_top_down():
    rows = grading_key()
    assert rows[0]['range'] == '70-100'
    assert rows[-1]['grade'] == 'F'


def fake_result(name, total):
    return SimpleNamespace(subject=SimpleNamespace(name=name), total_score=Decimal(total))


def test_format_subject_list():
    assert comments.format_subject_list([]) == ''
    assert comments.format_subject_list(['Maths']) == 'Maths'
    assert comments.format_subject_list(['Maths', 'English']) == 'Maths and English'
    assert comments.format_subject_list(['Maths', 'English', 'Physics']) == 'Maths, English and Physics'


def test_teacher_comment_mentions_strengths_for_good_average():
    results = [fake_result('Maths', 85), fake_result('English', 72), fake_result('Physics', 65)]
    text = comments.teacher_comment(Decimal('74'), results)
    assert text.startswith('Very good performance!')
    assert 'Particularly excellent in Maths.' in text


def test_teacher_comment_mentions_weak_subjects_for_low_average():
    results = [fake_result('Maths', 30), fake_result('English', 45), fake_result('Physics', 55)]
    text = comments.teacher_comment(Decimal('43'), results)
    assert text.startswith('Below average performance.')
    assert 'Pay special attention to Maths and English.' in text


def test_principal_comment_tiers():
    assert comments.principal_comment(90).startswith('Outstanding')
    assert comments.principal_comment(10).startswith('Serious academic intervention')
