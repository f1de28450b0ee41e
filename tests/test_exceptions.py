"""
Unit Tests for the error taxonomy
"""
import pytest
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, OperationalError

from edutrack.core.exceptions import (
    ConflictError,
    EduTrackError,
    StudentNotFoundError,
    TransientStoreError,
    ValidationError,
    error_response,
    translate_store_errors,
)
from edutrack.schemas import parse_input


class Sample(BaseModel):
    count: int = Field(..., gt=0)


class TestErrors:
    """Test codes and serialization"""

    def test_not_found_code(self):
        error = StudentNotFoundError('21CS001')

        assert error.code == 'STUDENT_NOT_FOUND'
        assert error.details == {'resource_type': 'Student', 'resource_id': '21CS001'}

    def test_validation_error_field(self):
        error = ValidationError('bad', field='credits')

        assert error.to_dict() == {'code': 'VALIDATION_ERROR', 'message': 'bad', 'details': {'field': 'credits'}}

    def test_parse_input_wraps_pydantic_errors(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_input(Sample, {'count': 0})

        assert exc_info.value.details['field'] == 'count'
        assert exc_info.value.message.startswith('count:')

    def test_error_response_hides_unexpected_errors(self):
        response = error_response(RuntimeError('connection string leaked'))

        assert response['success'] is False
        assert response['error']['code'] == 'INTERNAL_ERROR'
        assert 'leaked' not in response['error']['message']

    def test_error_response_keeps_domain_errors(self):
        response = error_response(ConflictError('duplicate'))

        assert response['error']['code'] == 'CONFLICT'
        assert isinstance(ConflictError('x'), EduTrackError)


class TestTranslateStoreErrors:
    """Test storage error mapping"""

    def test_integrity_error_becomes_conflict(self):
        with pytest.raises(ConflictError):
            with translate_store_errors('attendance insert'):
                raise IntegrityError('INSERT', {}, Exception('UNIQUE constraint failed'))

    def test_operational_error_becomes_transient(self):
        with pytest.raises(TransientStoreError) as exc_info:
            with translate_store_errors('student lookup'):
                raise OperationalError('SELECT', {}, Exception('connection refused'))

        assert exc_info.value.code == 'STORE_UNAVAILABLE'

    def test_other_errors_pass_through(self):
        with pytest.raises(KeyError):
            with translate_store_errors('student lookup'):
                raise KeyError('id')
