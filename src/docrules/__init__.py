"""
docrules - document access-rule evaluator

Decides whether an actor may read or write a document of a hosted document
database, using path-matched rules written in a small expression language.

Main exports:
- DocRulesEngine: Engine with decision log
- PolicyEvaluator: Pure rule evaluation
- RequestContext / Decision: Evaluator input and output
- load_rules: Rule table loader
"""

from .engine import DocRulesEngine
from .identity import Keypair, IdentityToken, issue_token, verify_token
from .request import Decision, RequestContext
from .rules import PolicyEvaluator, RuleTable, load_rules, load_rules_from_string
from .store import DocumentStore, InMemoryDocumentStore, SqliteDocumentStore
from .errors import *
from .config import *

__version__ = "0.1.0"

__all__ = [
    'DocRulesEngine',
    'PolicyEvaluator',
    'RequestContext',
    'Decision',
    'RuleTable',
    'load_rules',
    'load_rules_from_string',
    'DocumentStore',
    'InMemoryDocumentStore',
    'SqliteDocumentStore',
    'Keypair',
    'IdentityToken',
    'issue_token',
    'verify_token',
]
