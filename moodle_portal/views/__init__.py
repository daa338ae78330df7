from ..models.moodle import initials


def page_context(request, **extra):
    """Template variables every portal page renders from"""
    portal = request.portal
    context = {
        'state': portal.state,
        'session': portal.session,
        'moodle_url': request.registry.moodle.site_url,
        'initials': initials,
    }
    context.update(extra)
    return context
