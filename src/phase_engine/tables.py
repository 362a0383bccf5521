"""Static decision tables used by the phase engines.

Every "if technology X then decision Y" rule lives here as data so the
engines stay free of branching chains and each table can be tested alone.
"""

from __future__ import annotations

from dataclasses import dataclass

from phase_engine.models import (
	Complexity,
	DependencyInfo,
	FailureAction,
	Priority,
	StepPhase,
	ValidationRule,
)

# -- Exploration --

# Ordered highest priority first: manifest > config > entry point > docs > tests
KEY_FILE_LADDER: tuple[tuple[str, tuple[str, ...]], ...] = (
	("manifest", ("package.json", "composer.json", "Gemfile", "requirements.txt", "pom.xml", "Cargo.toml", "pyproject.toml", "go.mod")),
	("config", ("tsconfig.json", "webpack.config", "vite.config", ".eslintrc", "tailwind.config")),
	("entry_point", ("main.", "index.", "app.", "server.", "App.tsx", "App.jsx")),
	("docs", ("README", "CHANGELOG", "CONTRIBUTING", "docs/")),
	("tests", (".test.", ".spec.", "__tests__/", "test/", "tests/")),
)

FRAMEWORK_INDICATORS: dict[str, tuple[str, ...]] = {
	"react": ("react", ".jsx", ".tsx"),
	"vue": (".vue", '"vue"', "vue.js"),
	"angular": ("@angular", "angular.json"),
	"svelte": ("svelte",),
	"next.js": ("next.config", '"next"', "next.js"),
	"nuxt": ("nuxt",),
	"express": ("express",),
	"fastify": ("fastify",),
	"django": ("django", "manage.py"),
	"flask": ("flask",),
	"spring": ("springframework", "@spring"),
	"rails": ("rails/", "gemfile"),
	"jest": ("jest",),
	"vitest": ("vitest",),
}

LANGUAGE_INDICATORS: dict[str, tuple[str, ...]] = {
	"typescript": ("typescript", ".ts", "tsconfig"),
	"javascript": (".js", ".jsx", "package.json"),
	"python": (".py", "requirements.txt", "__init__.py", "pyproject.toml"),
	"java": (".java", "pom.xml"),
	"csharp": (".csproj", ".sln", "using system;"),
	"rust": (".rs", "cargo.toml", "cargo.lock"),
	"go": ("go.mod", "package main"),
}

DATABASE_INDICATORS: dict[str, tuple[str, ...]] = {
	"postgresql": ("postgresql", "postgres", '"pg"'),
	"mysql": ("mysql", "mariadb"),
	"mongodb": ("mongodb", "mongoose"),
	"sqlite": ("sqlite",),
	"redis": ("redis",),
}

TECHNOLOGY_TABLES: tuple[dict[str, tuple[str, ...]], ...] = (
	FRAMEWORK_INDICATORS,
	LANGUAGE_INDICATORS,
	DATABASE_INDICATORS,
)

EXTENSION_TECHNOLOGIES: dict[str, str] = {
	"js": "javascript",
	"ts": "typescript",
	"jsx": "react",
	"tsx": "react",
	"py": "python",
	"java": "java",
	"cpp": "c++",
	"rb": "ruby",
	"go": "go",
	"php": "php",
	"rs": "rust",
	"kt": "kotlin",
	"swift": "swift",
}

NODE_TECHNOLOGIES = ("javascript", "typescript", "react", "express")

# (content indicators, requirement) inferred from key file contents
INFERRED_REQUIREMENTS: tuple[tuple[tuple[str, ...], str], ...] = (
	(("package.json",), "maintain npm package structure"),
	(("test", "spec"), "maintain test coverage"),
	(("readme",), "update documentation"),
)


@dataclass(frozen=True)
class RecommendationRule:
	"""Emit message when every stated condition holds."""

	message: str
	with_tech: tuple[str, ...] = ()
	without_tech: tuple[str, ...] = ()
	contents_have: tuple[str, ...] = ()
	contents_lack: tuple[str, ...] = ()
	structure_has: tuple[str, ...] = ()
	structure_lacks: tuple[str, ...] = ()

	def matches(self, structure: str, contents: str, technologies: set[str]) -> bool:
		structure = structure.lower()
		contents = contents.lower()
		return (
			all(t in technologies for t in self.with_tech)
			and not any(t in technologies for t in self.without_tech)
			and all(c in contents for c in self.contents_have)
			and not any(c in contents for c in self.contents_lack)
			and all(s in structure for s in self.structure_has)
			and not any(s in structure for s in self.structure_lacks)
		)


RECOMMENDATION_RULES: tuple[RecommendationRule, ...] = (
	RecommendationRule("Add comprehensive README.md documentation", contents_lack=("readme",)),
	RecommendationRule(
		"Consider migrating to TypeScript for better type safety",
		with_tech=("javascript",), without_tech=("typescript",),
	),
	RecommendationRule("Add test coverage for reliability", contents_lack=("test", "spec")),
	RecommendationRule(
		"Organize components in src/ directory structure",
		with_tech=("react",), structure_lacks=("src",),
	),
	RecommendationRule(
		"Add .gitignore to exclude node_modules and build artifacts",
		structure_has=("node_modules",), contents_lack=(".gitignore",),
	),
	RecommendationRule(
		"Implement CORS and security headers for API endpoints",
		contents_have=("api",), contents_lack=("cors",),
	),
	RecommendationRule(
		"Consider Next.js for production-ready React applications",
		with_tech=("react",), without_tech=("next.js",),
	),
)

# -- Planning: requirement analysis --

NON_FUNCTIONAL_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
	(("fast", "performance"), "Optimize for performance"),
	(("scale", "scalab", "many users"), "Design for scalability"),
	(("secure", "security", "auth", "login"), "Implement security measures"),
	(("reliable", "production"), "Ensure reliability and error handling"),
)

ALWAYS_NON_FUNCTIONAL: tuple[str, ...] = (
	"Write maintainable, well-documented code",
	"Follow established coding conventions",
)

INTEGRATION_KEYWORDS: dict[str, tuple[str, ...]] = {
	"Database integration": ("database", "db", "sql"),
	"External API integration": ("api", "rest", "graphql"),
	"Authentication system": ("auth", "oauth", "login"),
}

DEFAULT_FEATURES: tuple[str, ...] = (
	"Implement core functionality",
	"Add error handling",
	"Create documentation",
)

# keyword -> score contribution toward the complexity class
COMPLEXITY_KEYWORDS: dict[str, int] = {
	"microservice": 2,
	"distributed": 2,
	"realtime": 1,
	"real-time": 1,
	"machine learning": 2,
}

# (minimum score, class), checked in order
COMPLEXITY_THRESHOLDS: tuple[tuple[int, Complexity], ...] = (
	(4, Complexity.COMPLEX),
	(2, Complexity.MODERATE),
)

# -- Planning: technology stack --


@dataclass(frozen=True)
class StackChoice:
	chosen: str
	alternatives: tuple[str, ...]
	reasoning: str
	tradeoffs: tuple[str, ...]


# category -> (vision keywords, existing technologies) that make the category relevant
CATEGORY_TRIGGERS: dict[str, tuple[tuple[str, ...], tuple[str, ...]]] = {
	"frontend": (
		("ui", "frontend", "web app", "interface", "react", "vue", "angular", "svelte", "component", "page"),
		("react", "vue", "angular", "svelte", "next.js", "nuxt"),
	),
	"backend": (
		("api", "server", "backend", "database", "auth", "endpoint"),
		("express", "fastify", "django", "flask", "spring", "rails"),
	),
	"database": (
		("database", "data", "store", "storage", "persist"),
		("postgresql", "mysql", "mongodb", "sqlite"),
	),
	"build": ((), ()),
	"test": ((), ()),
}

ALWAYS_CATEGORIES = ("build", "test")

# category -> ordered (existing technology, choice)
STACK_EXISTING: dict[str, tuple[tuple[str, StackChoice], ...]] = {
	"frontend": (
		("react", StackChoice(
			"React", ("Vue.js", "Angular", "Svelte"),
			"React is already used in the project",
			("Large bundle size", "Steep learning curve for beginners"),
		)),
		("vue", StackChoice(
			"Vue.js", ("React", "Angular", "Svelte"),
			"Vue.js is already used in the project",
			("Smaller ecosystem than React", "Less corporate backing"),
		)),
		("angular", StackChoice(
			"Angular", ("React", "Vue.js", "Svelte"),
			"Angular is already used in the project",
			("Heavy framework", "Verbose component model"),
		)),
		("svelte", StackChoice(
			"Svelte", ("React", "Vue.js", "Angular"),
			"Svelte is already used in the project",
			("Smaller ecosystem", "Fewer component libraries"),
		)),
	),
	"backend": (
		("express", StackChoice(
			"Express.js", ("Fastify", "Koa.js", "NestJS"),
			"Express.js is already used in the project",
			("Older architecture", "Requires more boilerplate"),
		)),
		("fastify", StackChoice(
			"Fastify", ("Express.js", "Koa.js", "NestJS"),
			"Fastify is already used in the project",
			("Smaller ecosystem", "Newer technology"),
		)),
		("django", StackChoice(
			"Django", ("Flask", "FastAPI"),
			"Django is already used in the project",
			("Monolithic conventions", "Heavier than needed for small APIs"),
		)),
		("flask", StackChoice(
			"Flask", ("Django", "FastAPI"),
			"Flask is already used in the project",
			("Fewer batteries included", "Manual structure decisions"),
		)),
	),
	"database": (
		("postgresql", StackChoice(
			"PostgreSQL", ("MySQL", "SQLite", "MongoDB"),
			"PostgreSQL is already used in the project",
			("More complex setup", "Resource intensive"),
		)),
		("mysql", StackChoice(
			"MySQL", ("PostgreSQL", "SQLite", "MongoDB"),
			"MySQL is already used in the project",
			("Weaker standards compliance", "Licensing considerations"),
		)),
		("mongodb", StackChoice(
			"MongoDB", ("PostgreSQL", "MySQL", "SQLite"),
			"MongoDB is already used in the project",
			("No joins", "Schema drift"),
		)),
		("sqlite", StackChoice(
			"SQLite", ("PostgreSQL", "MySQL", "MongoDB"),
			"SQLite is already used in the project",
			("Limited concurrency", "Not suitable for production scale"),
		)),
	),
	"build": (
		("typescript", StackChoice(
			"TypeScript + Vite", ("Webpack", "Rollup", "esbuild"),
			"TypeScript is already in use, Vite provides fast development",
			("Learning curve for Vite", "Less mature than Webpack"),
		)),
	),
	"test": (
		("jest", StackChoice(
			"Jest", ("Vitest", "Mocha + Chai", "Testing Library"),
			"Jest is already configured in the project",
			("Slower than newer alternatives", "Heavy configuration"),
		)),
		("vitest", StackChoice(
			"Vitest", ("Jest", "Mocha + Chai", "Playwright"),
			"Vitest is already configured in the project",
			("Newer with smaller ecosystem", "Less plugin support"),
		)),
	),
}

# category -> ordered (vision keywords, choice) for technologies the vision names explicitly
STACK_EXPLICIT: dict[str, tuple[tuple[tuple[str, ...], StackChoice], ...]] = {
	"database": (
		(("postgresql", "postgres"), StackChoice(
			"PostgreSQL", ("MySQL", "SQLite", "MongoDB"),
			"PostgreSQL specified in requirements",
			("More complex setup than SQLite", "Heavier than needed for simple apps"),
		)),
		(("mongodb", "mongo"), StackChoice(
			"MongoDB", ("PostgreSQL", "MySQL", "SQLite"),
			"MongoDB specified in requirements",
			("No joins", "Schema drift"),
		)),
		(("mysql",), StackChoice(
			"MySQL", ("PostgreSQL", "SQLite", "MongoDB"),
			"MySQL specified in requirements",
			("Weaker standards compliance", "Licensing considerations"),
		)),
	),
}

STACK_DEFAULTS: dict[str, StackChoice] = {
	"frontend": StackChoice(
		"React", ("Vue.js", "Angular", "Svelte"),
		"React has the largest ecosystem and community support",
		("Larger learning curve", "More complex setup"),
	),
	"backend": StackChoice(
		"Express.js", ("Fastify", "NestJS", "Koa.js"),
		"Express.js has the largest ecosystem and is battle-tested",
		("More verbose than modern alternatives", "Requires more setup"),
	),
	"database": StackChoice(
		"PostgreSQL", ("MySQL", "SQLite", "MongoDB"),
		"PostgreSQL offers the best balance of features and reliability",
		("More complex setup", "Resource intensive"),
	),
	"build": StackChoice(
		"Vite", ("Webpack", "Rollup", "Parcel"),
		"Vite offers fast development and modern defaults",
		("Newer tool with smaller ecosystem", "Different configuration"),
	),
	"test": StackChoice(
		"Vitest", ("Jest", "Mocha + Chai", "Playwright"),
		"Vitest is fast and works well with modern build tools",
		("Newer with smaller ecosystem", "Less plugin support"),
	),
}

SIMPLE_DATABASE_DEFAULT = StackChoice(
	"SQLite", ("PostgreSQL", "MySQL", "MongoDB"),
	"SQLite is perfect for simple applications and prototyping",
	("Limited concurrency", "Not suitable for production scale"),
)

TYPED_LANGUAGE_MARKERS = ("TypeScript",)

# -- Planning: dependencies (static lookup, no registry resolution) --


def _dep(name: str, version: str, purpose: str, size_kb: int) -> DependencyInfo:
	return DependencyInfo(name=name, version=version, purpose=purpose, size_kb=size_kb)


DEPENDENCY_TABLE: dict[str, dict[str, tuple[DependencyInfo, ...]]] = {
	"React": {
		"production": (
			_dep("react", "^18.2.0", "UI library", 42),
			_dep("react-dom", "^18.2.0", "React DOM rendering", 130),
		),
		"development": (_dep("@vitejs/plugin-react", "^4.0.0", "React support for Vite", 20),),
	},
	"Vue.js": {"production": (_dep("vue", "^3.3.0", "UI framework", 90),)},
	"Angular": {"production": (_dep("@angular/core", "^16.0.0", "UI framework", 350),)},
	"Svelte": {"development": (_dep("svelte", "^4.0.0", "UI compiler", 60),)},
	"Express.js": {
		"production": (
			_dep("express", "^4.18.0", "Web framework", 200),
			_dep("cors", "^2.8.5", "CORS middleware", 10),
		),
		"development": (_dep("nodemon", "^3.0.0", "Development reload", 80),),
	},
	"Fastify": {"production": (_dep("fastify", "^4.21.0", "Web framework", 300),)},
	"Django": {"production": (_dep("django", ">=4.2", "Web framework", 8000),)},
	"Flask": {"production": (_dep("flask", ">=2.3", "Web framework", 300),)},
	"PostgreSQL": {"production": (_dep("pg", "^8.11.0", "PostgreSQL client", 120),)},
	"MySQL": {"production": (_dep("mysql2", "^3.6.0", "MySQL client", 500),)},
	"MongoDB": {"production": (_dep("mongoose", "^7.4.0", "MongoDB ODM", 700),)},
	"SQLite": {"production": (_dep("better-sqlite3", "^8.5.0", "SQLite driver", 900),)},
	"TypeScript + Vite": {
		"development": (
			_dep("typescript", "^5.0.0", "Type checking", 1500),
			_dep("vite", "^4.4.0", "Build tool", 800),
		),
	},
	"Vite": {"development": (_dep("vite", "^4.4.0", "Build tool", 800),)},
	"Jest": {"development": (_dep("jest", "^29.6.0", "Test runner", 2000),)},
	"Vitest": {"development": (_dep("vitest", "^0.34.0", "Test runner", 1200),)},
}

# -- Planning: file layout skeleton ({ext} is ts or js) --

# (path, purpose, contents, needs_frontend)
DIRECTORY_SKELETON: tuple[tuple[str, str, tuple[str, ...], bool], ...] = (
	("src", "Main source code directory", ("components", "utils", "types", "services"), False),
	("src/components", "Reusable UI components", ("Button.{ext}x", "Modal.{ext}x", "Form.{ext}x"), True),
	("src/utils", "Utility functions and helpers", ("api.{ext}", "validation.{ext}", "constants.{ext}"), False),
	("tests", "Test files and test utilities", ("unit", "integration", "helpers"), False),
	("docs", "Project documentation", ("README.md", "API.md", "CONTRIBUTING.md"), False),
)

# (path, purpose, dependencies, exports, size, complexity, needs_frontend)
FILE_SKELETON: tuple[tuple[str, str, tuple[str, ...], tuple[str, ...], str, Complexity, bool], ...] = (
	("src/index.{ext}", "Main entry point", (), ("main function", "app initialization"), "small", Complexity.SIMPLE, False),
	("src/App.{ext}x", "Root UI component", ("components",), ("App component",), "medium", Complexity.MODERATE, True),
	("src/utils/validation.{ext}", "Input validation helpers", (), ("validators",), "small", Complexity.SIMPLE, False),
	("package.json", "Project configuration and dependencies", (), (), "small", Complexity.SIMPLE, False),
)

CONVENTIONS: tuple[str, ...] = (
	"Use kebab-case for file names",
	"Use PascalCase for component names",
	"Keep components under 200 lines",
	"Write tests for all utility functions",
)

# -- Planning: validation rules --

VALIDATION_RULE_TEMPLATES: dict[str, ValidationRule] = {
	"typescript": ValidationRule(
		type="typescript",
		description="TypeScript compilation check",
		command="npx tsc --noEmit",
		failure_action=FailureAction.BLOCK,
		auto_fix=False,
		priority=Priority.CRITICAL,
	),
	"eslint": ValidationRule(
		type="eslint",
		description="Code quality and style check",
		command="npx eslint src",
		failure_action=FailureAction.WARN,
		auto_fix=True,
		priority=Priority.HIGH,
	),
	"test": ValidationRule(
		type="test",
		description="Run all tests",
		command="npm test",
		failure_action=FailureAction.BLOCK,
		auto_fix=False,
		priority=Priority.CRITICAL,
	),
	"build": ValidationRule(
		type="build",
		description="Production build check",
		command="npm run build",
		failure_action=FailureAction.BLOCK,
		auto_fix=False,
		priority=Priority.CRITICAL,
	),
}

ASSUMPTIONS: tuple[str, ...] = (
	"Development environment has necessary tools installed",
	"Network access is available for dependency installation",
	"No major requirement changes during implementation",
	"Standard development practices are acceptable",
)

# -- Completion: validation battery --

BASE_VALIDATION_TYPES: tuple[str, ...] = ("custom", "eslint", "build")

# stack marker (matched against lower-cased technologies and chosen stack) -> extra types
STACK_VALIDATION_TYPES: dict[str, tuple[str, ...]] = {
	"typescript": ("typescript",),
	"javascript": ("javascript",),
	"jest": ("test",),
	"vitest": ("test",),
}

DEFAULT_VALIDATION_COMMANDS: dict[str, str] = {
	"typescript": "npx tsc --noEmit",
	"javascript": "find . -name '*.js' -not -path './node_modules/*' -exec node --check {} +",
	"eslint": "npx eslint .",
	"test": "npm test",
	"build": "npm run build --if-present",
	"format": "npx prettier --check .",
	"custom": "ls -la",
}

FIX_VALIDATION_COMMANDS: dict[str, str] = {
	"eslint": "npx eslint . --fix",
	"format": "npx prettier --write .",
}

# Probe battery for run_tests
TEST_PROBES: tuple[str, ...] = ("ls -la", "pwd")
MANIFEST_TEST_PROBE = "npm ls --depth=0"

# -- Completion: fallback plan synthesized from vision keywords --

# (keywords, step id, phase, title, deliverables, priority)
FALLBACK_STEPS: tuple[tuple[tuple[str, ...], str, StepPhase, str, tuple[str, ...], Priority], ...] = (
	(("readme", "documentation"), "create-readme", StepPhase.DOCUMENTATION, "Create README", ("README.md",), Priority.CRITICAL),
	(("package.json", "npm"), "create-manifest", StepPhase.SETUP, "Create package manifest", ("package.json",), Priority.CRITICAL),
	(("gitignore",), "create-gitignore", StepPhase.SETUP, "Create .gitignore", (".gitignore",), Priority.HIGH),
	(("react", "component"), "create-react-app", StepPhase.CORE, "Create main React component", ("src/App.jsx",), Priority.HIGH),
	(("api", "server", "express"), "create-server", StepPhase.CORE, "Create server entry point", ("server.js",), Priority.CRITICAL),
	(("typescript",), "create-tsconfig", StepPhase.SETUP, "Create TypeScript configuration", ("tsconfig.json",), Priority.HIGH),
	(("test", "testing"), "create-tests", StepPhase.TESTING, "Create tests directory", ("Unit tests",), Priority.MEDIUM),
)

# Deliverable classification, checked in order against the lower-cased deliverable
DELIVERABLE_KINDS: tuple[tuple[str, tuple[str, ...]], ...] = (
	("readme", ("readme",)),
	("manifest", ("package.json",)),
	("test", ("test",)),
	("setup", ("tsconfig", ".gitignore", "directory structure", "configuration", ".eslintrc", "vite.config")),
	("core", ("component", "business logic", "endpoint", "core", "feature", "server.js", "app.jsx", "app.tsx")),
	("docs", ("documentation", "usage", "examples", "guide")),
)

CORE_FALLBACK_FILES: tuple[str, ...] = ("src/index.js", "src/utils/helpers.js")
