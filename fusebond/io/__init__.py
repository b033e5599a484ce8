from .terms import (
    TermFile,
    TermFileValidationError,
    TermSpec,
    load_terms,
    parse_terms,
    register_terms,
)
