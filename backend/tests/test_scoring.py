from examhub.models import ExamAnswer, Question
from examhub.scoring import percentage, score_answers


def _question(qid, correct=None):
    return Question(id=qid, exam_id=1, text=f"Q{qid}", correct_option_id=correct, sealed=correct is not None)


def _answer(qid, oid):
    return ExamAnswer(session_id=1, question_id=qid, selected_option_id=oid)


def test_three_of_four_scores_75():
    questions = [_question(1, 10), _question(2, 20), _question(3, 30), _question(4, 40)]
    answers = [_answer(1, 10), _answer(2, 20), _answer(3, 30), _answer(4, 41)]
    report = score_answers(questions, answers)
    assert report.score == 75.0
    assert report.total_questions == 4
    assert report.correct_answers == 3
    assert report.incorrect_answers == 1


def test_empty_exam_scores_zero():
    report = score_answers([], [])
    assert report.score == 0.0
    assert report.total_questions == 0
    assert percentage(0, 0) == 0.0


def test_unanswered_questions_are_incorrect():
    questions = [_question(1, 10), _question(2, 20)]
    report = score_answers(questions, [_answer(1, 10)])
    assert report.score == 50.0
    assert report.outcomes[1].selected_option_id is None
    assert report.outcomes[1].is_correct is False


def test_unsealed_question_never_correct():
    questions = [_question(1, None)]
    report = score_answers(questions, [_answer(1, 10)])
    assert report.correct_answers == 0


def test_last_answer_wins():
    questions = [_question(1, 10)]
    report = score_answers(questions, [_answer(1, 11), _answer(1, 10)])
    assert report.correct_answers == 1
    report = score_answers(questions, [_answer(1, 10), _answer(1, 11)])
    assert report.correct_answers == 0


def test_outcomes_follow_question_order():
    questions = [_question(3, 30), _question(1, 10)]
    report = score_answers(questions, [_answer(1, 10)])
    assert [o.question_id for o in report.outcomes] == [3, 1]
    assert [o.is_correct for o in report.outcomes] == [False, True]
