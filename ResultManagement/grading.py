# ResultManagement/grading.py
from decimal import Decimal, ROUND_HALF_UP

from management.models import Setting

DEFAULT_PASS_MARK = Decimal('40')

# (minimum score, grade, remark, grade point)
GRADE_SCALE = [
    (Decimal('70'), 'A', 'Excellent', Decimal('5')),
    (Decimal('60'), 'B', 'Very Good', Decimal('4')),
    (Decimal('50'), 'C', 'Good', Decimal('3')),
    (Decimal('45'), 'D', 'Fair', Decimal('2')),
    (Decimal('40'), 'E', 'Pass', Decimal('1')),
    (Decimal('0'), 'F', 'Fail', Decimal('0')),
]


def quantize(value, places='0.01'):
    return Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def grade_info(score):
    """Grade, remark and grade point for a score out of 100"""
    score = Decimal(score or 0)
    for minimum, grade, remark, point in GRADE_SCALE:
        if score >= minimum:
            return {'grade': grade, 'remark': remark, 'point': point}
    return {'grade': 'F', 'remark': 'Fail', 'point': Decimal('0')}


def grade_for(score):
    return grade_info(score)['grade']


def pass_mark():
    """Pass mark out of 100, editable from the school settings page"""
    return Decimal(str(Setting.get_value('pass_mark', DEFAULT_PASS_MARK)))


def is_pass(score, mark=None):
    if mark is None:
        mark = pass_mark()
    return Decimal(score or 0) >= mark


def grading_key():
    """Scale rows for printing on report cards"""
    rows = []
    upper = Decimal('100')
    for minimum, grade, remark, point in GRADE_SCALE:
        rows.append({'grade': grade, 'range': f"{minimum}-{upper}", 'remark': remark, 'point': point})
        upper = minimum - Decimal('0.01')
    return rows


def competition_rank(items, key):
    """
    Rank ``items`` by ``key`` descending. Tied values share a position and the
    next distinct value skips ahead (1, 1, 3). Returns ``[(position, item)]``.
    """
    ordered = sorted(items, key=key, reverse=True)
    ranked = []
    position = 0
    previous = None
    for index, item in enumerate(ordered, start=1):
        value = key(item)
        if value != previous:
            position = index
            previous = value
        ranked.append((position, item))
    return ranked


def ordinal(n):
    if n is None:
        return ''
    if 10 <= n % 100 <= 20:
        suffix = 'th'
    else:
        suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(n % 10, 'th')
    return f"{n}{suffix}"
