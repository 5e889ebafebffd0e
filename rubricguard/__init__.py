"""
RubricGuard - assisted grading with live consistency checks.

A grader scores submissions against a fixed rubric and writes a
justification per criterion; RubricGuard asks a judgment service whether
each justification is supported by the submission, warns about scores that
drift from the grader's own earlier pattern, and summarizes the session.
"""

__version__ = "1.0.0"
__author__ = "RubricGuard Team"
