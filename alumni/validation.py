"""
Input validation for event payloads.

Request bodies use the same nested shape as the event summary (``date.start``,
``registration.fee.amount`` and so on). Parsers return a flat dict of model
column values or raise ValidationError listing every bad field.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from alumni.contract import EVENT_TYPES, EVENT_STATUSES, LOCATION_TYPES
from alumni.errors import ValidationError


def parse_datetime(value):
    """Parse an ISO-8601 timestamp into a naive UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
    else:
        raise ValueError('not a timestamp')

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def parse_event_payload(data, event=None):
    """
    Validate an event create/update body.

    Args:
        data: Decoded JSON body
        event: Existing Event when updating; only supplied fields are validated

    Returns:
        dict of Event column names to values
    """
    if not isinstance(data, dict):
        raise ValidationError({'body': 'Expected a JSON object'})

    partial = event is not None
    errors = {}
    values = {}

    # Text fields
    for field, column in (('title', 'title'), ('description', 'description')):
        if field in data:
            text = data.get(field)
            if not isinstance(text, str) or not text.strip():
                errors[field] = f'{field.capitalize()} cannot be empty'
            else:
                values[column] = text.strip()
        elif not partial:
            errors[field] = f'{field.capitalize()} is required'

    if 'title' in values and len(values['title']) > 200:
        errors['title'] = 'Title must be 200 characters or fewer'

    if 'type' in data:
        if data['type'] not in EVENT_TYPES:
            errors['type'] = f"Invalid event type. Valid types: {', '.join(EVENT_TYPES)}"
        else:
            values['event_type'] = data['type']
    elif not partial:
        errors['type'] = 'Event type is required'

    # Time window
    date = data.get('date') or {}
    if not isinstance(date, dict):
        errors['date'] = 'Expected an object with start and end'
        date = {}
    for key, column in (('start', 'starts_at'), ('end', 'ends_at')):
        if key in date:
            try:
                values[column] = parse_datetime(date[key])
            except (TypeError, ValueError):
                errors[f'date.{key}'] = f'Valid {key} date is required'
        elif not partial:
            errors[f'date.{key}'] = f'Valid {key} date is required'

    starts_at = values.get('starts_at', event.starts_at if event else None)
    ends_at = values.get('ends_at', event.ends_at if event else None)
    if starts_at and ends_at and 'date.start' not in errors and 'date.end' not in errors:
        if ends_at <= starts_at:
            errors['date.end'] = 'End date must be after start date'

    # Location
    location = data.get('location')
    if location is not None:
        if not isinstance(location, dict):
            errors['location'] = 'Expected an object'
        else:
            if 'type' in location:
                if location['type'] not in LOCATION_TYPES:
                    errors['location.type'] = 'Invalid location type'
                else:
                    values['location_type'] = location['type']
            for key, column in (('venue', 'venue'), ('address', 'address'), ('city', 'city'),
                                ('country', 'country'), ('virtualLink', 'virtual_link')):
                if key not in location:
                    continue
                text = location[key]
                if text is not None and not isinstance(text, str):
                    errors[f'location.{key}'] = 'Must be a string'
                else:
                    values[column] = (text or '').strip() or None
    elif not partial:
        errors['location.type'] = 'Location type is required'

    # Capacity
    if 'capacity' in data:
        capacity = data['capacity']
        if capacity is None:
            values['capacity'] = None
        elif isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
            errors['capacity'] = 'Capacity must be a positive whole number or null'
        else:
            values['capacity'] = capacity

    # Registration policy
    registration = data.get('registration')
    if registration is not None:
        if not isinstance(registration, dict):
            errors['registration'] = 'Expected an object'
        else:
            if 'isRequired' in registration:
                values['registration_required'] = parse_bool(registration['isRequired'], default=True)
            if 'deadline' in registration:
                if registration['deadline'] in (None, ''):
                    values['registration_deadline'] = None
                else:
                    try:
                        values['registration_deadline'] = parse_datetime(registration['deadline'])
                    except (TypeError, ValueError):
                        errors['registration.deadline'] = 'Deadline must be an ISO-8601 timestamp'
            if 'fee' in registration:
                fee = registration['fee'] or {}
                try:
                    amount = Decimal(str(fee.get('amount', 0) or 0))
                except (InvalidOperation, AttributeError):
                    errors['registration.fee.amount'] = 'Fee must be a number'
                else:
                    if not amount.is_finite():
                        errors['registration.fee.amount'] = 'Fee must be a number'
                    elif amount < 0:
                        errors['registration.fee.amount'] = 'Fee cannot be negative'
                    else:
                        values['fee_amount'] = amount
                currency = (fee.get('currency') or 'USD') if isinstance(fee, dict) else 'USD'
                if not isinstance(currency, str) or len(currency) != 3:
                    errors['registration.fee.currency'] = 'Currency must be a 3-letter code'
                else:
                    values['fee_currency'] = currency.upper()

    deadline = values.get('registration_deadline', event.registration_deadline if event else None)
    if deadline and ends_at and 'registration.deadline' not in errors and deadline > ends_at:
        errors['registration.deadline'] = 'Deadline must be before the event ends'

    if 'status' in data:
        if data['status'] not in EVENT_STATUSES:
            errors['status'] = 'Invalid status'
        else:
            values['status'] = data['status']

    if 'isPublic' in data:
        values['is_public'] = parse_bool(data['isPublic'], default=True)

    if 'tags' in data:
        tags = data['tags'] or []
        if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
            errors['tags'] = 'Tags must be a list of strings'
        else:
            values['tags'] = ','.join(t.strip() for t in tags if t.strip()) or None

    if errors:
        raise ValidationError(errors)

    return values


def parse_pagination(args, default_limit=20, max_limit=100):
    """Read page/limit query params."""
    errors = {}
    page = args.get('page', 1, type=int)
    limit = args.get('limit', default_limit, type=int)
    if page is None or page < 1:
        errors['page'] = 'Page must be a positive integer'
    if limit is None or limit < 1 or limit > max_limit:
        errors['limit'] = f'Limit must be between 1 and {max_limit}'
    if errors:
        raise ValidationError(errors)
    return page, limit
