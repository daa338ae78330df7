"""
Moodle records as seen by the portal

Moodle answers the same logical question with differently shaped payloads
depending on which web-service function was used. The schemas here are the
single place where those payloads become MoodleCourse / MoodleUser objects.
"""

from marshmallow import Schema, fields, validate, pre_load, post_load, EXCLUDE

SITE_FORMAT = 'site'


class MoodleCourse:
    def __init__(self, id, shortname='', fullname='', displayname='', idnumber='',
                 summary='', summaryformat=1, format='', startdate=0, enddate=0,
                 categoryid=None, visible=1, courseimage=None):
        self.id = id
        self.shortname = shortname
        self.fullname = fullname
        self.displayname = displayname or fullname
        self.idnumber = idnumber
        self.summary = summary
        self.summaryformat = summaryformat
        self.format = format
        self.startdate = startdate
        self.enddate = enddate
        self.categoryid = categoryid
        self.visible = visible
        self.courseimage = courseimage

    @property
    def is_site(self):
        """The front-page pseudo-course that stands for the whole site"""
        return self.format == SITE_FORMAT

    def __repr__(self):
        return f"<MoodleCourse {self.id} {self.shortname!r}>"


class MoodleUser:
    def __init__(self, id, username, firstname='', lastname='', fullname='', email='',
                 department=None, institution=None, city=None, country=None,
                 auth=None, suspended=False, profileimageurlsmall=None):
        self.id = id
        self.username = username
        self.firstname = firstname
        self.lastname = lastname
        self.fullname = fullname or f"{firstname} {lastname}".strip()
        self.email = email
        self.department = department
        self.institution = institution
        self.city = city
        self.country = country
        self.auth = auth
        self.suspended = suspended
        self.profileimageurlsmall = profileimageurlsmall

    @property
    def can_login(self):
        return not self.suspended and self.auth != 'nologin'

    @property
    def initials(self):
        return initials(self.firstname, self.lastname)

    def __repr__(self):
        return f"<MoodleUser {self.id} {self.username!r}>"


def initials(*names):
    """First letter of each non-empty name, uppercased"""
    return ''.join(n[0].upper() for n in names if isinstance(n, str) and n)


class CourseSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(required=True)
    shortname = fields.Str(load_default='')
    fullname = fields.Str(load_default='')
    displayname = fields.Str(load_default='')
    idnumber = fields.Str(load_default='', allow_none=True)
    summary = fields.Str(load_default='', allow_none=True)
    summaryformat = fields.Int(load_default=1)
    format = fields.Str(load_default='')
    startdate = fields.Int(load_default=0)
    enddate = fields.Int(load_default=0)
    categoryid = fields.Int(load_default=None, allow_none=True)
    visible = fields.Int(load_default=1)
    courseimage = fields.Str(load_default=None, allow_none=True)

    @post_load
    def make_course(self, data, **kwargs):
        return MoodleCourse(**data)


class UserSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    id = fields.Int(required=True)
    username = fields.Str(required=True)
    firstname = fields.Str(load_default='')
    lastname = fields.Str(load_default='')
    fullname = fields.Str(load_default='')
    email = fields.Str(load_default='')
    department = fields.Str(load_default=None, allow_none=True)
    institution = fields.Str(load_default=None, allow_none=True)
    city = fields.Str(load_default=None, allow_none=True)
    country = fields.Str(load_default=None, allow_none=True)
    auth = fields.Str(load_default=None, allow_none=True)
    suspended = fields.Bool(load_default=False)
    profileimageurlsmall = fields.Str(load_default=None, allow_none=True)

    @post_load
    def make_user(self, data, **kwargs):
        return MoodleUser(**data)


class _FormSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    @pre_load
    def strip_blank_fields(self, data, **kwargs):
        # Form posts send every input; an empty one means "not supplied"
        cleaned = {}
        for key, value in data.items():
            if isinstance(value, str):
                value = value.strip()
            if value not in (None, ''):
                cleaned[key] = value
        return cleaned


class CreateCourseSchema(_FormSchema):
    fullname = fields.Str(required=True, validate=validate.Length(min=1, max=254))
    shortname = fields.Str(required=True, validate=validate.Length(min=1, max=255))
    categoryid = fields.Int()
    idnumber = fields.Str()
    summary = fields.Str()
    format = fields.Str()


class CreateUserSchema(_FormSchema):
    username = fields.Str(required=True, validate=validate.Length(min=1, max=100))
    password = fields.Str(required=True, validate=validate.Length(min=1))
    firstname = fields.Str(required=True, validate=validate.Length(min=1))
    lastname = fields.Str(required=True, validate=validate.Length(min=1))
    email = fields.Email(required=True)
    auth = fields.Str()


def load_courses(records):
    return CourseSchema(many=True).load(records)


def load_users(records):
    return UserSchema(many=True).load(records)

