# ResultManagement/comments.py
"""
Automatic report card comments for a student's term performance.
"""
from decimal import Decimal

TEACHER_COMMENTS = [
    (80, "Excellent performance! {detail} Keep up the outstanding work and keep aiming higher."),
    (70, "Very good performance! {detail} A little more effort will take you to excellence."),
    (60, "Good performance! {detail} Keep working hard on the areas that need improvement."),
    (50, "Fair performance. {detail} More dedication and focused study will bring better results."),
    (40, "Below average performance. {detail} Put in more effort and ask for help where necessary."),
    (0, "Poor performance. {detail} Immediate attention and support are needed."),
]

PRINCIPAL_COMMENTS = [
    (80, "Outstanding academic achievement! You are a role model for other students."),
    (70, "Commendable performance! Your hard work is paying off. Keep the momentum."),
    (60, "Good effort shown. Keep working diligently for greater success."),
    (50, "Satisfactory performance. Make full use of the resources available to improve."),
    (40, "Your academic performance needs to improve. Seek guidance from your teachers."),
    (0, "Serious academic intervention is required. Work closely with your teachers and parents on an improvement plan."),
]


def pick(tiers, average):
    average = Decimal(average or 0)
    for minimum, text in tiers:
        if average >= minimum:
            return text
    return tiers[-1][1]


def format_subject_list(subjects):
    """["A"] -> "A", ["A", "B"] -> "A and B", ["A", "B", "C"] -> "A, B and C" """
    subjects = list(subjects)
    if not subjects:
        return ''
    if len(subjects) == 1:
        return subjects[0]
    return f"{', '.join(subjects[:-1])} and {subjects[-1]}"


def strength_comment(results):
    if not results:
        return "You have shown good understanding across subjects."
    excellent = [r.subject.name for r in results if r.total_score >= 80]
    good = [r.subject.name for r in results if 70 <= r.total_score < 80]
    if excellent:
        return f"Particularly excellent in {format_subject_list(excellent)}."
    if good:
        return f"Strong performance in {format_subject_list(good)}."
    return "You have shown consistent effort across subjects."


def improvement_comment(results):
    if not results:
        return "Focus on improving your study habits and seek help when needed."
    weak = [r.subject.name for r in results if r.total_score < 50]
    if weak:
        return f"Pay special attention to {format_subject_list(weak)}."
    return "Focus on consistent study habits across all subjects."


def teacher_comment(average, results=()):
    detail = strength_comment(results) if Decimal(average or 0) >= 60 else improvement_comment(results)
    return pick(TEACHER_COMMENTS, average).format(detail=detail)


def principal_comment(average):
    return pick(PRINCIPAL_COMMENTS, average)


def generate_comments(average, results=()):
    return {
        'teacher_comment': teacher_comment(average, results),
        'principal_comment': principal_comment(average),
    }
