from routers import admin, auth, invitations, projects, tags, tasks, users

ROUTERS = (
    auth.router,
    users.router,
    projects.router,
    tasks.router,
    invitations.router,
    tags.router,
    admin.router,
)
