"""The ordered dependency catalogue and the ImageMagick target.

Order matters: later entries link against earlier ones through the shared
workspace prefix.  Flags are plain data; the pipeline only interprets the
placeholders (``{prefix}``, ``{jobs}``, ``{version}``, ...).
"""

from __future__ import annotations

from magick_builder.models.dependency import (
    BuildStep,
    DependencySpec,
    FetchSpec,
    FixedVersion,
    GitHubTags,
    GitLabTags,
    GitRemoteTags,
)

# ── step builders ──────────────────────────────────────────────────────────


def autotools(
    *configure_args: str,
    bootstrap: tuple[str, ...] | None = None,
    env: dict[str, str] | None = None,
) -> tuple[BuildStep, ...]:
    """[bootstrap] → ./configure --prefix → make -jN → make install.

    *env* applies to every step, bootstrap and make included.
    """
    steps: list[BuildStep] = []
    if bootstrap:
        steps.append(BuildStep(*bootstrap, env=env))
    steps += [
        BuildStep("./configure", "--prefix={prefix}", *configure_args, env=env),
        BuildStep("make", "-j{jobs}", env=env),
        BuildStep("make", "install", env=env),
    ]
    return tuple(steps)


def cmake_ninja(*defines: str, build_dir: str = "build") -> tuple[BuildStep, ...]:
    """cmake -G Ninja → ninja → ninja install, out of tree in *build_dir*."""
    return (
        BuildStep(
            "cmake",
            "-S",
            ".",
            "-B",
            build_dir,
            "-DCMAKE_INSTALL_PREFIX={prefix}",
            "-DCMAKE_BUILD_TYPE=Release",
            *defines,
            "-G",
            "Ninja",
            "-Wno-dev",
        ),
        BuildStep("ninja", "-j{jobs}", "-C", build_dir),
        BuildStep("ninja", "-C", build_dir, "install"),
    )


def meson_ninja(*options: str, bootstrap: tuple[str, ...] | None = None) -> tuple[BuildStep, ...]:
    """meson setup (static, release, stripped) → ninja → ninja install."""
    steps: list[BuildStep] = []
    if bootstrap:
        steps.append(BuildStep(*bootstrap))
    steps += [
        BuildStep(
            "meson",
            "setup",
            "build",
            "--prefix={prefix}",
            "--buildtype=release",
            "--default-library=static",
            "--strip",
            *options,
        ),
        BuildStep("ninja", "-j{jobs}", "-C", "build"),
        BuildStep("ninja", "-C", "build", "install"),
    ]
    return tuple(steps)


def _disabled(*features: str) -> tuple[str, ...]:
    return tuple(f"-D{f}=disabled" for f in features)


# ── dependencies ───────────────────────────────────────────────────────────

DEPENDENCIES: list[DependencySpec] = [
    DependencySpec(
        name="m4",
        version_source=FixedVersion("latest"),
        fetch=FetchSpec("https://ftp.gnu.org/gnu/m4/m4-latest.tar.xz"),
        steps=autotools(
            "--disable-nls",
            "--enable-c++",
            "--enable-threads=posix",
            bootstrap=("autoreconf", "-fi"),
        ),
    ),
    DependencySpec(
        name="libtool",
        version_source=FixedVersion("2.4.7"),
        fetch=FetchSpec("https://ftp.gnu.org/gnu/libtool/libtool-{version}.tar.xz"),
        steps=autotools("--with-pic", "M4={prefix}/bin/m4"),
    ),
    DependencySpec(
        name="libtiff",
        version_source=GitHubTags("libsdl-org/libtiff"),
        fetch=FetchSpec(
            "https://codeload.github.com/libsdl-org/libtiff/tar.gz/refs/tags/v{version}",
            filename="libtiff-{version}.tar.gz",
        ),
        steps=autotools("--enable-cxx", "--with-pic", bootstrap=("./autogen.sh",)),
    ),
    DependencySpec(
        name="jpeg-turbo",
        version_source=FixedVersion("git"),
        fetch=FetchSpec("https://github.com/imageMagick/jpeg-turbo.git", kind="git"),
        steps=cmake_ninja("-DENABLE_SHARED=ON", "-DENABLE_STATIC=ON"),
    ),
    DependencySpec(
        name="libfpx",
        version_source=GitRemoteTags("https://github.com/imageMagick/libfpx.git"),
        fetch=FetchSpec("https://github.com/imageMagick/libfpx.git", kind="git"),
        steps=autotools("--with-pic", bootstrap=("autoreconf", "-fi")),
    ),
    DependencySpec(
        name="ghostscript",
        version_source=FixedVersion("10.02.1"),
        fetch=FetchSpec(
            "https://github.com/ArtifexSoftware/ghostpdl-downloads/releases/download/"
            "gs10021/ghostscript-{version}.tar.xz"
        ),
        steps=autotools("--with-libiconv=native", bootstrap=("./autogen.sh",)),
    ),
    DependencySpec(
        name="png12",
        version_source=FixedVersion("1.2.59"),
        fetch=FetchSpec(
            "https://github.com/glennrp/libpng/archive/refs/tags/v{version}.tar.gz",
            filename="libpng-{version}.tar.gz",
        ),
        steps=autotools("--with-pic", bootstrap=("./autogen.sh",)),
    ),
    DependencySpec(
        name="libwebp",
        version_source=FixedVersion("git"),
        fetch=FetchSpec(
            "https://chromium.googlesource.com/webm/libwebp",
            kind="git",
            directory="libwebp-git",
        ),
        steps=cmake_ninja(
            "-DBUILD_SHARED_LIBS=ON",
            "-DZLIB_INCLUDE_DIR=/usr",
            "-DWEBP_BUILD_ANIM_UTILS=OFF",
            "-DWEBP_BUILD_CWEBP=ON",
            "-DWEBP_BUILD_DWEBP=ON",
            "-DWEBP_BUILD_VWEBP=OFF",
            "-DWEBP_BUILD_EXTRAS=OFF",
            "-DWEBP_BUILD_GIF2WEBP=OFF",
            "-DWEBP_BUILD_IMG2WEBP=OFF",
            "-DWEBP_BUILD_LIBWEBPMUX=OFF",
            "-DWEBP_BUILD_WEBPINFO=OFF",
            "-DWEBP_BUILD_WEBPMUX=OFF",
            "-DWEBP_LINK_STATIC=ON",
        ),
    ),
    DependencySpec(
        name="freetype",
        # tags look like VER-2-13-2
        version_source=GitLabTags("7950", strip_prefix="VER-", separator_map={"-": "."}),
        fetch=FetchSpec(
            "https://gitlab.freedesktop.org/freetype/freetype/-/archive/"
            "VER-{version_dashed}/freetype-VER-{version_dashed}.tar.bz2",
            filename="freetype-{version}.tar.bz2",
        ),
        steps=meson_ninja(
            *_disabled("harfbuzz", "png", "bzip2", "brotli", "zlib", "tests"),
            bootstrap=("./autogen.sh",),
        ),
    ),
    DependencySpec(
        name="fontconfig",
        version_source=GitLabTags("890"),
        fetch=FetchSpec(
            "https://gitlab.freedesktop.org/fontconfig/fontconfig/-/archive/"
            "{version}/fontconfig-{version}.tar.bz2"
        ),
        steps=(
            BuildStep("sed", "-i", "s|Cflags:|& -DLIBXML_STATIC|", "fontconfig.pc.in"),
            *autotools(
                "--disable-docbook",
                "--disable-docs",
                "--disable-shared",
                "--disable-nls",
                "--enable-iconv",
                "--enable-libxml2",
                "--enable-static",
                "--with-libiconv-prefix=/usr",
                "--with-pic",
                bootstrap=("./autogen.sh", "--noconf"),
                env={"LDFLAGS": "{ldflags} -DLIBXML_STATIC"},
            ),
        ),
    ),
    DependencySpec(
        name="fribidi",
        version_source=GitHubTags("fribidi/fribidi"),
        fetch=FetchSpec(
            "https://github.com/fribidi/fribidi/archive/refs/tags/v{version}.tar.gz",
            filename="fribidi-{version}.tar.gz",
        ),
        steps=meson_ninja("-Ddocs=false", "-Dtests=false"),
    ),
    DependencySpec(
        name="harfbuzz",
        version_source=GitHubTags("harfbuzz/harfbuzz"),
        fetch=FetchSpec(
            "https://github.com/harfbuzz/harfbuzz/archive/refs/tags/{version}.tar.gz",
            filename="harfbuzz-{version}.tar.gz",
        ),
        steps=meson_ninja(
            *_disabled(
                "benchmark", "cairo", "docs", "glib", "gobject", "icu", "introspection", "tests"
            ),
        ),
    ),
    DependencySpec(
        name="raqm",
        version_source=GitHubTags("host-oman/libraqm"),
        fetch=FetchSpec(
            "https://codeload.github.com/host-oman/libraqm/tar.gz/refs/tags/v{version}",
            filename="raqm-{version}.tar.gz",
        ),
        steps=meson_ninja("--includedir={prefix}/include", "-Ddocs=false"),
    ),
    DependencySpec(
        name="jemalloc",
        version_source=GitHubTags("jemalloc/jemalloc"),
        fetch=FetchSpec(
            "https://github.com/jemalloc/jemalloc/archive/refs/tags/{version}.tar.gz",
            filename="jemalloc-{version}.tar.gz",
        ),
        steps=autotools(
            "--disable-debug",
            "--disable-doc",
            "--disable-fill",
            "--disable-log",
            "--disable-prof",
            "--disable-stats",
            "--enable-autogen",
            "--enable-static",
            "--enable-xmalloc",
            bootstrap=("./autogen.sh",),
        ),
    ),
    DependencySpec(
        name="opencl-sdk",
        version_source=FixedVersion("git"),
        fetch=FetchSpec(
            "https://github.com/KhronosGroup/OpenCL-SDK.git",
            kind="git",
            directory="opencl-sdk-git",
            recursive=True,
        ),
        steps=cmake_ninja(
            "-DBUILD_SHARED_LIBS=ON",
            "-DBUILD_TESTING=OFF",
            "-DBUILD_DOCS=OFF",
            "-DBUILD_EXAMPLES=OFF",
            "-DCMAKE_C_FLAGS={cflags}",
            "-DCMAKE_CXX_FLAGS={cxxflags}",
            "-DOPENCL_HEADERS_BUILD_CXX_TESTS=OFF",
            "-DOPENCL_ICD_LOADER_BUILD_SHARED_LIBS=ON",
            "-DOPENCL_SDK_BUILD_OPENGL_SAMPLES=OFF",
            "-DOPENCL_SDK_BUILD_SAMPLES=OFF",
            "-DOPENCL_SDK_TEST_SAMPLES=OFF",
            "-DTHREADS_PREFER_PTHREAD_FLAG=ON",
        ),
    ),
    DependencySpec(
        name="openjpeg",
        version_source=GitHubTags("uclouvain/openjpeg"),
        fetch=FetchSpec(
            "https://codeload.github.com/uclouvain/openjpeg/tar.gz/refs/tags/v{version}",
            filename="openjpeg-{version}.tar.gz",
        ),
        steps=cmake_ninja(
            "-DBUILD_TESTING=OFF",
            "-DBUILD_SHARED_LIBS=ON",
            "-DBUILD_THIRDPARTY=ON",
            "-DCMAKE_EXPORT_COMPILE_COMMANDS=ON",
        ),
    ),
    DependencySpec(
        name="lcms",
        version_source=GitRemoteTags("https://github.com/ImageMagick/lcms.git"),
        fetch=FetchSpec("https://github.com/ImageMagick/lcms.git", kind="git"),
        steps=autotools(
            "--disable-shared",
            "--with-jpeg={prefix}",
            "--with-tiff={prefix}",
            "--with-fastfloat",
            "--with-threaded",
            bootstrap=("./autogen.sh",),
        ),
    ),
]


# ── final target ───────────────────────────────────────────────────────────

IMAGEMAGICK = DependencySpec(
    name="ImageMagick",
    version_source=GitHubTags("ImageMagick/ImageMagick"),
    fetch=FetchSpec(
        "https://github.com/ImageMagick/ImageMagick/archive/refs/tags/{version}.tar.gz",
        filename="imagemagick-{version}.tar.gz",
    ),
    steps=(
        BuildStep("autoreconf", "-fi"),
        BuildStep("mkdir", "-p", "build"),
        BuildStep(
            "../configure",
            "--prefix={install_prefix}",
            "--enable-ccmalloc",
            "--enable-delegate-build",
            "--enable-hdri",
            "--enable-hugepages",
            "--enable-legacy-support",
            "--enable-opencl",
            "--with-dejavu-font-dir=/usr/share/fonts/truetype/dejavu",
            "--with-dmalloc",
            "--with-fontpath=/usr/share/fonts",
            "--with-fpx",
            "--with-gcc-arch=native",
            "--with-gslib",
            "--with-gvc",
            "--with-heic",
            "--with-jemalloc",
            "--with-modules",
            "--with-perl",
            "--with-pic",
            "--with-pkgconfigdir={workspace}/lib/pkgconfig",
            "--with-quantum-depth=16",
            "--with-rsvg",
            "--with-tcmalloc",
            "--with-urw-base35-font-dir=/usr/share/fonts/type1/urw-base35",
            "--with-utilities",
            "CPPFLAGS={cppflags}",
            "CXXFLAGS={cxxflags}",
            "CFLAGS={cflags}",
            "LDFLAGS={ldflags}",
            cwd="build",
        ),
        BuildStep("make", "-j{jobs}", cwd="build"),
        BuildStep("make", "install", cwd="build", privileged=True),
        # the magick binary cannot find its libraries until the cache is refreshed;
        # ldconfig rewrites /etc/ld.so.cache whatever the prefix
        BuildStep("ldconfig", "{install_prefix}/lib", requires_root=True),
    ),
)
